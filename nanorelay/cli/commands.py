"""
CLI 命令模块 - nanorelay 的所有命令行命令定义。

本模块使用 Typer 框架定义 nanorelay 的完整 CLI 命令体系：
- onboard：初始化配置文件
- gateway：启动转发网关（平台渠道 + 转发服务）
- status：查看系统状态
- forward：离线维护频道存储中的转发目标（list / add / remove / clear）
- channels：渠道状态查看

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色等）
"""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from nanorelay import __logo__, __version__

# 创建 Typer 应用实例（CLI 根命令）
app = typer.Typer(
    name="nanorelay",
    help=f"{__logo__} nanorelay - Cross-platform chat relay bot",
    no_args_is_help=True,  # 无参数时显示帮助信息
)

console = Console()  # Rich 控制台实例，用于美化输出


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} nanorelay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """nanorelay CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 nanorelay 配置。

    在 ~/.nanorelay/ 下创建默认配置文件 config.json，
    然后打印后续操作指引（启用渠道、配置转发规则、启动网关）。
    """
    from nanorelay.config.loader import get_config_path, save_config
    from nanorelay.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} nanorelay is ready!")
    console.print("\nNext steps:")
    console.print("  1. Enable channels and add bot tokens in [cyan]~/.nanorelay/config.json[/cyan]")
    console.print("  2. Add forward rules, or set [cyan]forward.mode[/cyan] to \"database\" and use /forward in chat")
    console.print("  3. Start: [cyan]nanorelay gateway[/cyan]")


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    启动 nanorelay 网关服务（核心启动命令）。

    1. 加载配置并初始化消息总线
    2. 创建渠道管理器（机器人注册表）
    3. 创建频道存储、回复关联表、目标解析器、转发管线和 /forward 命令处理器
    4. 启动转发服务和所有渠道，进入运行循环

    参数:
        verbose: 是否输出 DEBUG 级别日志（包含每条消息的转发决策）
    """
    from nanorelay.bus.queue import MessageBus
    from nanorelay.channels.manager import ChannelManager
    from nanorelay.config.loader import load_config
    from nanorelay.forward.commands import ForwardCommands
    from nanorelay.forward.dispatch import RelayDispatcher
    from nanorelay.forward.relay_store import RelayStore
    from nanorelay.forward.service import ForwardService
    from nanorelay.forward.targets import TargetResolver
    from nanorelay.store.channels import ChannelStore
    from nanorelay.utils.helpers import get_store_path

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    console.print(f"{__logo__} Starting nanorelay gateway...")

    config = load_config()
    bus = MessageBus()
    channels = ChannelManager(config, bus)

    store = ChannelStore(get_store_path(config.store.path)) if config.forward.mode == "database" else None
    relays = RelayStore(config.forward.reply_timeout)
    resolver = TargetResolver(config.forward, store, channels)
    dispatcher = RelayDispatcher(channels, relays, config.forward.reply_timeout)
    commands = ForwardCommands(resolver, config.forward.admins)
    service = ForwardService(config.forward, bus, resolver, dispatcher, relays, commands)

    if channels.enabled_channels:
        console.print(f"[green]✓[/green] Channels enabled: {', '.join(channels.enabled_channels)}")
    else:
        console.print("[yellow]Warning: No channels enabled[/yellow]")

    if store is not None:
        console.print(f"[green]✓[/green] Forward mode: database ({store.path})")
    else:
        console.print(f"[green]✓[/green] Forward mode: config ({len(config.forward.rules)} rules)")
    console.print(f"[green]✓[/green] Reply timeout: {config.forward.reply_timeout / 1000:g}s")

    async def run():
        try:
            await asyncio.gather(
                service.run(),
                channels.start_all(),
            )
        except (KeyboardInterrupt, asyncio.CancelledError):
            console.print("\nShutting down...")
        finally:
            service.stop()
            relays.clear()
            await channels.stop_all()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


# ============================================================================
# Forward Target Commands
# ============================================================================


forward_app = typer.Typer(help="Manage forward targets in the channel store")
app.add_typer(forward_app, name="forward")


def _make_resolver():
    """
    构造离线使用的目标解析器。

    离线时没有在线机器人，地址按已启用的平台名解析，
    添加目标时必须显式给出负责推送的机器人账号。
    """
    from nanorelay.bus.queue import MessageBus
    from nanorelay.channels.manager import ChannelManager
    from nanorelay.config.loader import load_config
    from nanorelay.forward.targets import TargetResolver
    from nanorelay.store.channels import ChannelStore
    from nanorelay.utils.helpers import get_store_path

    config = load_config()
    channels = ChannelManager(config, MessageBus())
    store = ChannelStore(get_store_path(config.store.path))
    return TargetResolver(config.forward, store, channels), channels.enabled_channels


def _parse_source(channel: str, platforms: list[str]) -> tuple[str, str]:
    from nanorelay.forward.address import parse_address

    parsed = parse_address(channel, platforms)
    if parsed is None:
        console.print(f"[red]Invalid channel address: {channel}[/red]")
        raise typer.Exit(1)
    return parsed


@forward_app.command("list")
def forward_list(
    channel: str = typer.Argument(..., help="Source channel (platform:channelId)"),
):
    """列出来源频道的转发目标。"""
    from nanorelay.forward.address import format_target

    resolver, platforms = _make_resolver()
    platform, channel_id = _parse_source(channel, platforms)
    targets = asyncio.run(resolver.targets_for(platform, channel_id))

    if not targets:
        console.print("No forward targets.")
        return

    table = Table(title=f"Forward Targets of {channel}")
    table.add_column("Target", style="cyan")
    table.add_column("Bot")
    table.add_column("Guild")

    for target in targets:
        table.add_row(format_target(target), target.self_id, target.guild_id or "")

    console.print(table)


@forward_app.command("add")
def forward_add(
    channel: str = typer.Argument(..., help="Source channel (platform:channelId)"),
    target: str = typer.Argument(..., help="Target channel (platform:channelId)"),
    self_id: str = typer.Option(..., "--self-id", "-s", help="Bot account that posts to the target"),
    guild_id: str = typer.Option(None, "--guild-id", "-g", help="Guild of the target channel"),
):
    """为来源频道添加转发目标。"""
    from nanorelay.forward.address import format_target
    from nanorelay.forward.errors import ForwardError

    resolver, platforms = _make_resolver()
    platform, channel_id = _parse_source(channel, platforms)
    try:
        status, added = asyncio.run(resolver.add_target(platform, channel_id, target, self_id, guild_id))
    except ForwardError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if status == "updated":
        console.print(f"[green]✓[/green] Added {format_target(added)} to {channel}")
    elif status == "unchanged":
        console.print(f"[yellow]{format_target(added)} is already a target of {channel}[/yellow]")
    else:
        console.print(f"[red]Invalid target address: {target}[/red]")
        raise typer.Exit(1)


@forward_app.command("remove")
def forward_remove(
    channel: str = typer.Argument(..., help="Source channel (platform:channelId)"),
    target: str = typer.Argument(..., help="Target channel (platform:channelId)"),
):
    """删除来源频道的一个转发目标。"""
    from nanorelay.forward.errors import ForwardError

    resolver, platforms = _make_resolver()
    platform, channel_id = _parse_source(channel, platforms)
    try:
        status = asyncio.run(resolver.remove_target(platform, channel_id, target))
    except ForwardError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if status == "updated":
        console.print(f"[green]✓[/green] Removed {target} from {channel}")
    else:
        console.print(f"[red]{target} is not a target of {channel}[/red]")


@forward_app.command("clear")
def forward_clear(
    channel: str = typer.Argument(..., help="Source channel (platform:channelId)"),
):
    """清空来源频道的所有转发目标。"""
    from nanorelay.forward.errors import ForwardError

    resolver, platforms = _make_resolver()
    platform, channel_id = _parse_source(channel, platforms)
    try:
        asyncio.run(resolver.clear_targets(platform, channel_id))
    except ForwardError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Cleared forward targets of {channel}")


# ============================================================================
# Channel Commands
# ============================================================================


channels_app = typer.Typer(help="Manage channels")
app.add_typer(channels_app, name="channels")


@channels_app.command("status")
def channels_status():
    """
    显示所有渠道的状态信息。

    以表格形式展示每个渠道的名称、是否启用以及配置摘要。
    """
    from nanorelay.config.loader import load_config

    config = load_config()

    table = Table(title="Channel Status")
    table.add_column("Channel", style="cyan")
    table.add_column("Enabled", style="green")
    table.add_column("Configuration", style="yellow")

    dc = config.channels.discord
    dc_config = f"token: {dc.token[:10]}..." if dc.token else "[dim]not configured[/dim]"
    table.add_row(
        "Discord",
        "✓" if dc.enabled else "✗",
        dc_config
    )

    tg = config.channels.telegram
    tg_config = f"token: {tg.token[:10]}..." if tg.token else "[dim]not configured[/dim]"
    table.add_row(
        "Telegram",
        "✓" if tg.enabled else "✗",
        tg_config
    )

    ob = config.channels.onebot
    table.add_row(
        "OneBot",
        "✓" if ob.enabled else "✗",
        ob.ws_url
    )

    console.print(table)


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """
    显示 nanorelay 系统状态。

    展示内容：
    - 配置文件路径和状态
    - 转发模式、静态规则数量、回复超时
    - 频道存储路径和状态（database 模式）
    """
    from nanorelay.config.loader import get_config_path, load_config
    from nanorelay.utils.helpers import get_store_path

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} nanorelay Status\n")

    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")

    if config_path.exists():
        forward = config.forward
        console.print(f"Forward mode: {forward.mode}")
        if forward.mode == "database":
            store_path = get_store_path(config.store.path)
            console.print(f"Channel store: {store_path} {'[green]✓[/green]' if store_path.exists() else '[dim]empty[/dim]'}")
        else:
            console.print(f"Rules: {len(forward.rules)}")
        console.print(f"Reply timeout: {forward.reply_timeout / 1000:g}s")
        console.print(f"Admins: {', '.join(forward.admins) if forward.admins else '[dim]anyone[/dim]'}")


if __name__ == "__main__":
    app()
