"""
应用配置
从环境变量 / .env 读取：数据库、对象存储、认证与 Webhook 密钥
"""
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Hotel Back Office"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 前端公开地址（用于 CORS）
    APP_URL: str = "http://localhost:3000"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./backoffice.db"

    # 认证：身份提供方签发的会话 JWT
    AUTH_JWT_KEY: str = "your-secret-key-change-in-production"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # 认证 Webhook 签名密钥 (whsec_...)
    WEBHOOK_SECRET: Optional[str] = None

    # 对象存储 (S3 兼容)
    STORAGE_ENDPOINT_URL: Optional[str] = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_ACCESS_KEY_ID: Optional[str] = None
    STORAGE_SECRET_ACCESS_KEY: Optional[str] = None
    STORAGE_BUCKET: str = "images"
    STORAGE_PUBLIC_URL: Optional[str] = None

    # 图片压缩质量 (WebP)
    IMAGE_QUALITY: int = 75

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# 全局设置实例
settings = Settings()
