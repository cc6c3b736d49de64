# -*- coding: utf-8 -*-
"""
配置管理模块 - 从环境变量加载配置
"""
import os
from dotenv import load_dotenv

from schema_sync.core.schema_model import Settings

# 加载 .env 文件（如果存在）
load_dotenv()


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """基础配置类"""

    # Flask 配置
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', str(2 * 1024 * 1024)))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # SQL 编辑器默认设置
    DEFAULT_DIALECT = os.getenv('DEFAULT_DIALECT', 'postgresql')
    CASE_SENSITIVE_IDENTIFIERS = _env_bool('CASE_SENSITIVE_IDENTIFIERS', False)
    USE_INLINE_CONSTRAINTS = _env_bool('USE_INLINE_CONSTRAINTS', True)

    # AI 补全接口配置
    AI_API_KEY = os.getenv('AI_API_KEY', '')
    AI_API_URL = os.getenv('AI_API_URL', 'https://api.deepseek.com/v1/chat/completions')
    AI_MODEL = os.getenv('AI_MODEL', 'deepseek-chat')
    AI_TIMEOUT = float(os.getenv('AI_TIMEOUT', '120'))
    AI_MAX_ATTEMPTS = int(os.getenv('AI_MAX_ATTEMPTS', '2'))

    # AI SQL 逐段显示
    TYPING_CHUNK_SIZE = int(os.getenv('TYPING_CHUNK_SIZE', '48'))
    TYPING_INTERVAL = float(os.getenv('TYPING_INTERVAL', '0.015'))

    @classmethod
    def get_default_settings(cls):
        """获取默认的 SQL 编辑器设置"""
        return Settings(case_sensitive_identifiers=cls.CASE_SENSITIVE_IDENTIFIERS,
                        use_inline_constraints=cls.USE_INLINE_CONSTRAINTS,
                        dialect=cls.DEFAULT_DIALECT)

    @classmethod
    def get_ai_config(cls, overrides=None):
        """获取AI补全接口配置字典，overrides（如 app.config）中的值优先"""
        source = overrides or {}
        return {
            'api_key': source.get('AI_API_KEY', cls.AI_API_KEY),
            'api_url': source.get('AI_API_URL', cls.AI_API_URL),
            'model': source.get('AI_MODEL', cls.AI_MODEL),
            'timeout': source.get('AI_TIMEOUT', cls.AI_TIMEOUT),
            'max_attempts': source.get('AI_MAX_ATTEMPTS', cls.AI_MAX_ATTEMPTS)
        }


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False

    # 生产环境必须设置这些变量
    @classmethod
    def validate(cls):
        """验证生产环境必需的配置"""
        required = [
            ('SECRET_KEY', cls.SECRET_KEY, 'dev-secret-key-change-in-production'),
        ]

        missing = []
        for name, value, default in required:
            if not value or value == default:
                missing.append(name)

        if missing:
            raise ValueError(f"Missing required production settings: {', '.join(missing)}")


class TestingConfig(Config):
    """测试环境配置"""
    TESTING = True
    AI_API_KEY = ''
    TYPING_INTERVAL = 0.0


# 根据环境变量选择配置
def get_config():
    """根据 FLASK_ENV 环境变量获取对应的配置类"""
    env = os.getenv('FLASK_ENV', 'development')

    config_map = {
        'development': DevelopmentConfig,
        'production': ProductionConfig,
        'testing': TestingConfig
    }

    return config_map.get(env, DevelopmentConfig)


# 便捷访问
config = get_config()
