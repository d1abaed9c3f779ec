from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from .config import load_settings, validate_settings
from .db import ClarityDB, UserRecord
from .exporting import export_user_csv
from .reporting import format_minutes, load_week_summary, write_week_report


DEFAULT_OUT_DIR = Path(__file__).resolve().parent / "out"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claritycycle",
        description="Clarity Cycle：番茄钟任务、专注记录与周度追踪的后端服务",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite 数据库路径（默认读取 CLARITY_DB_PATH，否则为 claritycycle/data/clarity.sqlite）",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="启动 HTTP API 服务")
    serve_parser.add_argument("--host", default="127.0.0.1", help="监听地址")
    serve_parser.add_argument("--port", type=int, default=5000, help="监听端口")
    serve_parser.add_argument("--reload", action="store_true", help="开发模式自动重载")

    subparsers.add_parser("check-config", help="检查当前配置")

    report_parser = subparsers.add_parser("report", help="生成周度追踪 Markdown")
    report_parser.add_argument("--user", required=True, help="用户 ID、用户名或邮箱")
    report_parser.add_argument(
        "--week",
        type=int,
        default=0,
        help="周偏移，0 为本周，-1 为上周（不能为正数）",
    )
    report_parser.add_argument(
        "--out-dir",
        default=str(DEFAULT_OUT_DIR),
        help="输出目录，默认 claritycycle/out",
    )

    export_parser = subparsers.add_parser("export", help="导出任务与会话 CSV")
    export_parser.add_argument("--user", required=True, help="用户 ID、用户名或邮箱")
    export_parser.add_argument(
        "--out-dir",
        default=str(DEFAULT_OUT_DIR),
        help="输出目录，默认 claritycycle/out",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    if args.command == "serve":
        return _handle_serve(args)
    if args.command == "check-config":
        return _handle_check_config(args)

    db = ClarityDB(_resolve_db_path(args))

    if args.command == "report":
        return _handle_report(args, db, parser)
    if args.command == "export":
        return _handle_export(args, db)

    parser.print_help()
    return 2


def _resolve_db_path(args: argparse.Namespace) -> Path:
    if args.db:
        return Path(args.db)
    return Path(load_settings().db_path)


def _find_user(db: ClarityDB, ref: str) -> UserRecord | None:
    text = ref.strip()
    if text.isdigit():
        return db.get_user(int(text))
    if "@" in text:
        return db.get_user_by_email(text)
    return db.get_user_by_username(text)


def _handle_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api.app import create_app

    settings = load_settings()
    if args.reload:
        uvicorn.run(
            "claritycycle.api.app:create_default_app",
            factory=True,
            host=args.host,
            port=args.port,
            reload=True,
        )
        return 0

    app = create_app(db_path=Path(args.db) if args.db else None, settings=settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def _handle_check_config(args: argparse.Namespace) -> int:
    settings = load_settings()
    report = validate_settings(settings)
    for line in report.info:
        print(f"[信息] {line}")
    for line in report.warnings:
        print(f"[警告] {line}")
    for line in report.errors:
        print(f"[错误] {line}")
    if report.is_valid:
        print("配置检查通过。")
        return 0
    print("配置检查失败。")
    return 1


def _handle_report(args: argparse.Namespace, db: ClarityDB, parser: argparse.ArgumentParser) -> int:
    if args.week > 0:
        parser.error("--week 不能为正数")
    user = _find_user(db, args.user)
    if user is None:
        print(f"找不到用户：{args.user}")
        return 1

    summary = load_week_summary(db, user.id, offset=args.week)
    report_path = write_week_report(summary, user.id, Path(args.out_dir))
    stats = summary.stats
    print(f"专注会话: {stats.total_sessions} 次，专注时长: {format_minutes(stats.total_focus_time)}")
    print(f"完成任务: {stats.completed_tasks} / {stats.total_tasks}")
    print(f"周报已生成：{report_path}")
    return 0


def _handle_export(args: argparse.Namespace, db: ClarityDB) -> int:
    user = _find_user(db, args.user)
    if user is None:
        print(f"找不到用户：{args.user}")
        return 1

    tasks_path, sessions_path = export_user_csv(db=db, user_id=user.id, out_dir=Path(args.out_dir))
    print(f"任务 CSV 已导出：{tasks_path}")
    print(f"会话 CSV 已导出：{sessions_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
