"""
WSGI入口文件
用于Gunicorn部署
"""
import logging
import os

# 设置环境变量
os.environ.setdefault('FLASK_ENV', 'production')

# 导入Flask应用
from schema_sync.web_app.app import app
from schema_sync.web_app.app_config import get_config

# 应用生产配置
config = get_config()
if hasattr(config, 'validate'):
    config.validate()

logging.basicConfig(level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# 更新应用配置
app.config.update({
    'SECRET_KEY': config.SECRET_KEY,
    'DEBUG': getattr(config, 'DEBUG', False),
    'MAX_CONTENT_LENGTH': config.MAX_CONTENT_LENGTH
})

if __name__ == "__main__":
    app.run(host=os.getenv('HOST', '0.0.0.0'), port=int(os.getenv('PORT', '5001')), debug=app.config['DEBUG'])
else:
    # 这是WSGI服务器调用的应用对象
    application = app
