"""
迁移命令行

    python migrate.py up [tenant_id] [target]
    python migrate.py down [tenant_id] [target] [steps]
    python migrate.py status [tenant_id] [target]

tenant_id 省略或为 global 时操作全局库；target 为 relational、document 或 both（默认）。
"""
import argparse
import asyncio
import logging
from typing import List, Optional
from ..core.exceptions import AppError
from ..core.registry import ConnectionRegistry
from ..core.store import StoreTarget
from .runner import MigrationRunner

logger = logging.getLogger(__name__)

TARGET_ALIASES = {
    "relational": StoreTarget.RELATIONAL,
    "sql": StoreTarget.RELATIONAL,
    "mysql": StoreTarget.RELATIONAL,
    "postgresql": StoreTarget.RELATIONAL,
    "document": StoreTarget.DOCUMENT,
    "mongodb": StoreTarget.DOCUMENT,
    "both": StoreTarget.BOTH,
}


def _tenant_id(value: str) -> Optional[int]:
    if value.lower() == "global":
        return None
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"无效的租户ID: {value}")


def _target(value: str) -> StoreTarget:
    target = TARGET_ALIASES.get(value.lower())
    if target is None:
        raise argparse.ArgumentTypeError(f"无效的目标存储: {value}（relational / document / both）")
    return target


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="migrate.py", description="执行、回滚或查看数据库迁移")
    parser.add_argument("command", choices=["up", "down", "status"])
    parser.add_argument("tenant_id", nargs="?", type=_tenant_id, default=None,
                        help="租户ID，省略或 global 表示全局库")
    parser.add_argument("target", nargs="?", type=_target, default=StoreTarget.BOTH,
                        help="relational、document 或 both（默认）")
    parser.add_argument("steps", nargs="?", type=int, default=1, help="回滚步数（仅 down，默认1）")
    return parser


async def execute(args: argparse.Namespace, registry: ConnectionRegistry) -> int:
    runner = MigrationRunner(registry)
    scope = f"租户 {args.tenant_id}" if args.tenant_id is not None else "全局库"

    if args.command == "up":
        print(f"正在执行迁移（{scope}）...")
        report = await runner.run(args.tenant_id, args.target)
        for name in report.relational:
            print(f"  ✓ relational: {name}")
        for name in report.document:
            print(f"  ✓ document:   {name}")
        print(f"迁移完成，共执行 {report.total} 个")
    elif args.command == "down":
        print(f"正在回滚 {args.steps} 个迁移（{scope}）...")
        report = await runner.rollback(args.steps, args.tenant_id, args.target)
        for name in report.relational:
            print(f"  ✓ relational: {name}")
        for name in report.document:
            print(f"  ✓ document:   {name}")
        print(f"回滚完成，共回滚 {report.total} 个")
    else:
        print(f"迁移状态（{scope}）:")
        for item in await runner.status(args.tenant_id, args.target):
            mark = "✓" if item.applied else " "
            batch = f"batch {item.batch}" if item.batch is not None else "pending"
            print(f"  [{mark}] {item.store:<10} {item.name}  ({batch})")
    return 0


async def run_command(argv: Optional[List[str]] = None, registry: Optional[ConnectionRegistry] = None) -> int:
    """执行命令；传入的 registry 由调用方负责关闭"""
    args = build_parser().parse_args(argv)
    owned = registry is None
    if owned:
        registry = ConnectionRegistry()
    try:
        if owned:
            print("正在连接数据库...")
            await registry.initialize()
        return await execute(args, registry)
    except AppError as e:
        logger.error(f"迁移命令失败: {e.message}", exc_info=True)
        print(f"❌ 失败: {e.message}")
        return 1
    finally:
        if owned:
            await registry.close()


def main(argv: Optional[List[str]] = None) -> int:
    return asyncio.run(run_command(argv))
