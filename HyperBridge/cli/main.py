"""
CLI 主入口 - 使用 Click 框架
CLI main entry - using Click framework.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys

import click

from HyperBridge.config.manager import CONFIG_FILENAME
from HyperBridge.utils.paths import get_config_path, get_logs_path, get_temp_path


def _default_config_path() -> str:
    return os.path.join(get_config_path(), CONFIG_FILENAME)


@click.group()
def cli() -> None:
    """HyperBridge - WhatsApp 与 Telegram 论坛话题的双向桥接"""
    pass


@cli.command()
@click.option("--config", "config_path", default=None, help="配置文件路径")
@click.option("--log-level", default=None, help="覆盖配置中的日志级别")
def run(config_path: str | None, log_level: str | None) -> None:
    """启动桥接 / Start the bridge."""
    from HyperBridge.config.defaults import build_default_config
    from HyperBridge.config.manager import ConfigManager
    from HyperBridge.errors import ConnectionFatalError
    from HyperBridge.kernel.bootstrap import BridgeApp
    from HyperBridge.kernel.logging import setup_logging

    # 确保数据目录
    get_temp_path()
    get_logs_path()

    config = ConfigManager(defaults=build_default_config(), config_path=config_path or _default_config_path())
    asyncio.run(config.load())

    setup_logging(log_level or config.get("logging.level", "INFO"), config.get("logging.file") or None)
    logger = logging.getLogger("HyperBridge")
    logger.info("正在启动 HyperBridge...")

    app = BridgeApp(config)

    async def main() -> None:
        try:
            await app.start()
        except BaseException:
            await app.shutdown()
            raise
        await app.run_forever()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("收到键盘中断信号")
    except ConnectionFatalError as exc:
        logger.error("WhatsApp 连接永久关闭: %s", exc)
        sys.exit(1)
    except Exception:
        logger.exception("致命错误")
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", default=None, help="配置文件路径")
def init(config_path: str | None) -> None:
    """初始化配置 / Initialize configuration."""
    from HyperBridge.config.defaults import build_default_config

    config_path = config_path or _default_config_path()
    os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)

    if os.path.exists(config_path):
        click.echo(f"配置文件已存在: {config_path}")
        if not click.confirm("是否覆盖?"):
            return

    config = build_default_config()
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config, f, ensure_ascii=False, indent=2)

    click.echo(f"配置文件已创建: {config_path}")
    click.echo("请填写 telegram.bot_token、telegram.chat_id 和 whatsapp.socket_factory")


@cli.command()
def version() -> None:
    """显示版本信息 / Show version info."""
    from HyperBridge import __app_name__, __version__

    click.echo(f"{__app_name__} v{__version__}")


@cli.group()
def conf() -> None:
    """配置管理 / Configuration management."""
    pass


@conf.command("show")
@click.argument("key", required=False)
@click.option("--config", "config_path", default=None, help="配置文件路径")
def conf_show(key: str | None, config_path: str | None) -> None:
    """显示配置 / Show configuration."""
    config_path = config_path or _default_config_path()
    if not os.path.exists(config_path):
        click.echo("配置文件不存在，请先运行 init")
        return

    with open(config_path, encoding="utf-8") as f:
        config = json.load(f)

    if key:
        current = config
        for k in key.split("."):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                click.echo(f"键 '{key}' 不存在")
                return

        click.echo(json.dumps(current, ensure_ascii=False, indent=2))
    else:
        click.echo(json.dumps(config, ensure_ascii=False, indent=2))


def run_cli() -> int:
    """执行 CLI 并返回进程退出码 / Run the CLI and return the exit code."""
    try:
        cli(standalone_mode=False)
    except click.exceptions.Abort:
        return 1
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except SystemExit as exc:
        return int(exc.code or 0)
    return 0


if __name__ == "__main__":
    cli()
