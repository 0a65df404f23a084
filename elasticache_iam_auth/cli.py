"""CLI entry point for the ElastiCache IAM auth tool."""

import logging
from dataclasses import dataclass
from typing import Optional

import redis
import typer
from rich.console import Console
from rich.table import Table

from elasticache_iam_auth.auth_config import DEFAULT_PORT, DEFAULT_TIMEOUT, IAMAuthConfig
from elasticache_iam_auth.aws.exceptions import IAMAuthError
from elasticache_iam_auth.utils import parse_strategy, parse_variant, setup_logger

app = typer.Typer(
    help="ElastiCache IAM Auth CLI Tool - Generate IAM auth tokens and test IAM-authenticated connections"
)
# stdout is reserved for the token itself
console = Console(stderr=True)
logger = logging.getLogger(__name__)


@dataclass
class CliOptions:
    """Connection options shared by all commands."""

    endpoint: str
    port: int
    region: Optional[str]
    user: str
    profile: Optional[str]
    variant: str
    strategy: str
    use_ssl: bool
    connect_timeout: float
    read_timeout: float
    verbose: bool


def _build_config(options: CliOptions) -> IAMAuthConfig:
    """Validate CLI options and build the IAM auth config.

    Raises:
        ValueError: If variant or strategy is invalid
        IAMAuthError: If the endpoint, region or credentials are unusable
    """
    variant = parse_variant(options.variant)
    strategy = parse_strategy(options.strategy)

    return IAMAuthConfig(
        username=options.user,
        region=options.region,
        host=options.endpoint,
        port=options.port,
        connect_timeout=options.connect_timeout,
        read_timeout=options.read_timeout,
        ssl=options.use_ssl,
        variant=variant,
        strategy=strategy,
        profile=options.profile,
    )


@app.callback()
def main(
    ctx: typer.Context,
    endpoint: str = typer.Option(
        ...,
        "--endpoint",
        "-e",
        envvar="ELASTICACHE_ENDPOINT",
        help="ElastiCache 端點主機名稱 (必填，或設定 ELASTICACHE_ENDPOINT)"
    ),
    port: int = typer.Option(
        DEFAULT_PORT,
        "--port",
        "-P",
        envvar="ELASTICACHE_PORT",
        help=f"ElastiCache 連接埠 (預設: {DEFAULT_PORT})"
    ),
    region: Optional[str] = typer.Option(
        None,
        "--region",
        "-r",
        envvar="AWS_REGION",
        help="AWS Region (預設: AWS Profile 的 Region)"
    ),
    user: str = typer.Option(
        ...,
        "--user",
        "-u",
        envvar="ELASTICACHE_USER",
        help="ElastiCache 使用者 ID (必填，或設定 ELASTICACHE_USER)"
    ),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="AWS Profile (預設: 預設認證鏈)"),
    variant: str = typer.Option(
        "auto",
        "--variant",
        help="快取類型：auto, cluster 或 serverless (預設: auto，依端點判斷)"
    ),
    strategy: str = typer.Option(
        "sigv4",
        "--strategy",
        help="簽章策略：sigv4 或 botocore (預設: sigv4)"
    ),
    use_ssl: bool = typer.Option(True, "--ssl/--no-ssl", help="是否使用 TLS (預設: 使用)"),
    connect_timeout: float = typer.Option(DEFAULT_TIMEOUT, "--connect-timeout", help="連線逾時秒數"),
    read_timeout: float = typer.Option(DEFAULT_TIMEOUT, "--read-timeout", help="讀取逾時秒數"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="啟用詳細日誌輸出"),
):
    """Generate ElastiCache IAM auth tokens.

    Examples:
        # Print a token for a serverless cache
        elasticache-iam-auth -e cache-01-vk-yiy6se.serverless.euw1.cache.amazonaws.com -r eu-west-1 -u iam-user token

        # Show token validity details
        elasticache-iam-auth -e my-rg.abc123.clustercfg.use1.cache.amazonaws.com -r us-east-1 -u iam-user token --details

        # Connect and run SET/GET with the token
        elasticache-iam-auth -e cache-01-vk-yiy6se.serverless.euw1.cache.amazonaws.com -r eu-west-1 -u iam-user connect
    """
    setup_logger(verbose)
    ctx.obj = CliOptions(
        endpoint=endpoint,
        port=port,
        region=region,
        user=user,
        profile=profile,
        variant=variant,
        strategy=strategy,
        use_ssl=use_ssl,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        verbose=verbose,
    )


@app.command()
def token(
    ctx: typer.Context,
    details: bool = typer.Option(False, "--details", "-d", help="顯示 Token 資訊 (輸出至 stderr)"),
):
    """Print a freshly generated IAM auth token to stdout."""
    options: CliOptions = ctx.obj

    try:
        config = _build_config(options)
        auth_token = config.token
    except (ValueError, IAMAuthError) as e:
        console.print(f"[red]錯誤：{e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]操作已取消[/yellow]")
        logger.info("操作已取消")
        raise typer.Exit(130)
    except Exception as e:
        console.print(f"[red]未預期的錯誤：{e}[/red]")
        logger.exception("未預期的錯誤")
        raise typer.Exit(1)

    if details:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Field")
        table.add_column("Value")
        table.add_row("Resource Name", config.identity.name)
        table.add_row("Variant", config.identity.variant.value)
        table.add_row("Region", config.identity.region)
        table.add_row("User", config.username)
        table.add_row("Issued At", auth_token.issued_at.isoformat())
        table.add_row("Expires At", auth_token.expires_at.isoformat())
        console.print(table)

    typer.echo(auth_token.value)


@app.command()
def connect(
    ctx: typer.Context,
    key: str = typer.Option("test", "--key", "-k", help="測試用的 Key (預設: test)"),
    value: str = typer.Option("test", "--value", help="測試用的 Value (預設: test)"),
):
    """Connect with IAM auth, SET a key and read it back."""
    options: CliOptions = ctx.obj

    try:
        config = _build_config(options)
        logger.info(f"Connecting to ElastiCache at {options.endpoint}:{options.port}")

        with config.create_client() as client:
            result = client.set(key, value)
            logger.info(f"Set key '{key}' with value '{value}'. Result: {result}")

            stored = client.get(key)
            if isinstance(stored, bytes):
                stored = stored.decode("utf-8")
            logger.info(f"Retrieved value for key '{key}': {stored}")

        console.print(f"[bold green]✓[/bold green] 連線成功：{key} = {stored}")

    except (ValueError, IAMAuthError) as e:
        console.print(f"[red]錯誤：{e}[/red]")
        raise typer.Exit(1)
    except redis.RedisError as e:
        console.print(f"[red]ElastiCache 連線錯誤：{e}[/red]")
        logger.error(f"Error connecting to ElastiCache or performing operations: {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]操作已取消[/yellow]")
        logger.info("操作已取消")
        raise typer.Exit(130)
    except Exception as e:
        console.print(f"[red]未預期的錯誤：{e}[/red]")
        logger.exception("未預期的錯誤")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
