"""
应用常量配置
"""
# 默认（遗留）租户：tenant_id 缺省或为1时始终使用主集合
DEFAULT_TENANT_ID = 1

# 租户库命名
TENANT_DATABASE_PREFIX = "tenant_"

# 枚举取值
TENANT_STATUSES = ("active", "inactive", "suspended")
USER_ROLES = ("admin", "user", "moderator", "tenant")
USER_STATUSES = ("active", "inactive", "suspended")
PLAN_TYPES = ("free", "basic", "premium", "enterprise")
SUBSCRIPTION_STATUSES = ("active", "cancelled", "expired", "suspended")
BILLING_CYCLES = ("monthly", "yearly")

# 计费周期长度（天）
BILLING_CYCLE_DAYS = {
    "monthly": 30,
    "yearly": 365,
}

# 不限量
UNLIMITED = -1

# 存储容量
GIB = 1024 * 1024 * 1024

# JWT Token 配置
DEFAULT_TOKEN_EXPIRE_MINUTES = 30

# 密码哈希工作因子
BCRYPT_ROUNDS = 12

# 分页配置
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
DEFAULT_USER_LIST_LIMIT = 100

# 数据库连接池配置
DB_POOL_SIZE = 5
DB_MAX_OVERFLOW = 0
DB_POOL_RECYCLE = 3600  # 1小时

# 迁移记录表/集合
MIGRATIONS_TABLE = "migrations"
