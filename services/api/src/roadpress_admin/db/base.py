"""迁移脚本使用的元数据入口。

导入 models 包以确保全部表都登记到 Base.metadata；应用本身不自动建表。
"""

import roadpress_admin.models  # noqa: F401
from roadpress_admin.models.base import Base

__all__ = ["Base"]
