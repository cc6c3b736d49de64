"""
Gunicorn配置文件
"""
import multiprocessing
import os

# 服务器socket
bind = os.getenv('GUNICORN_BIND', "0.0.0.0:5001")  # 监听地址和端口
backlog = 2048

# 工作进程
# schema 保存在进程内存中，多个进程之间不共享
workers = int(os.getenv('GUNICORN_WORKERS', '1'))
threads = int(os.getenv('GUNICORN_THREADS', str(multiprocessing.cpu_count() * 2)))
worker_class = "gthread"
timeout = 150  # AI补全接口最长120秒
keepalive = 2

# 重启
max_requests = 1000  # 每个工作进程处理请求的最大数量
max_requests_jitter = 50  # 随机抖动
preload_app = True  # 预加载应用

# 日志
accesslog = os.getenv('GUNICORN_ACCESS_LOG', "-")  # 访问日志
errorlog = os.getenv('GUNICORN_ERROR_LOG', "-")   # 错误日志
loglevel = os.getenv('LOG_LEVEL', "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'

# 进程命名
proc_name = "schema_sync_app"

daemon = False
