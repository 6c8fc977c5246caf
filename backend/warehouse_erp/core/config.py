from typing import List, Union
import logging

from pydantic import AnyHttpUrl, validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    PROJECT_NAME: str = "仓储财务一体化系统"
    API_V1_STR: str = "/api/v1"

    # CORS配置
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # 数据库配置
    SQLITE_DATABASE_URI: str = "sqlite:///./warehouse_erp.db"

    # 单机版：未传 X-Operator-Id 时的默认操作人
    DEFAULT_OPERATOR_ID: int = 1

    # 业务参数
    EXPIRING_SOON_DAYS: int = 30  # 临期预警天数
    DEFAULT_DEBT_DUE_DAYS: int = 30  # 应收账款默认账期（天）
    AUTO_CREATE_PAYABLE_ON_QC: bool = True  # 质检通过后自动生成应付账款

    # 定时任务配置
    SCHEDULER_ENABLED: bool = True
    EXPIRY_CHECK_HOUR: int = 1  # 每天标记过期批次（小时）
    EXPIRY_CHECK_MINUTE: int = 0
    OVERDUE_CHECK_HOUR: int = 2  # 每天更新逾期账款（小时）
    REORDER_CHECK_INTERVAL_MINUTES: int = 60  # 自动补货检查间隔（分钟）

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
logger.info(f"加载配置: API_V1_STR={settings.API_V1_STR}, CORS={settings.BACKEND_CORS_ORIGINS}")
