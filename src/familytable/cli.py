"""CLI entry point for familytable security tooling."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

console = Console()

KEY_ENV_VAR = "FAMILYTABLE_ENCRYPTION_KEY"


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
def main(verbose: bool) -> None:
    """Our Family Table — account security tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )


@main.command()
def status() -> None:
    """Show 2FA configuration."""
    from familytable.config import settings
    from familytable.crypto import MasterKeyError, load_key

    try:
        load_key(settings.familytable_encryption_key)
        key_state = "[green]configured[/green]"
    except MasterKeyError as e:
        key_state = f"[red]{e}[/red]"

    console.print("[bold]2FA Configuration[/bold]")
    console.print(f"  Issuer: {settings.totp_issuer}")
    console.print(f"  Window: ±{settings.totp_window} step(s)")
    console.print(f"  Replay protection: {settings.totp_replay_protection}")
    console.print(f"  Grace period: {settings.two_factor_validity_seconds}s")
    console.print(f"  Master key: {key_state}")


@main.command()
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), help="Append the key to this file.")
def keygen(env_file: Path | None) -> None:
    """Generate a new master encryption key (64 hex chars)."""
    from familytable.crypto import generate_key

    key = generate_key()
    if env_file is None:
        click.echo(key)
        return

    content = env_file.read_text() if env_file.exists() else ""
    if KEY_ENV_VAR in content:
        console.print(f"[yellow]{KEY_ENV_VAR} already exists in {env_file}[/yellow]")
        console.print("  Rotating the key makes existing encrypted secrets unreadable; replace it manually.")
        sys.exit(1)

    sep = "" if not content or content.endswith("\n") else "\n"
    with open(env_file, "a") as f:
        f.write(f"{sep}# 2FA secret encryption key\n{KEY_ENV_VAR}={key}\n")
    console.print(f"[green]Added {KEY_ENV_VAR} to {env_file}[/green]")


@main.command()
@click.option("--account", required=True, help="Account label, usually the email.")
@click.option("--issuer", default=None, help="Issuer shown in the authenticator app.")
def secret(account: str, issuer: str | None) -> None:
    """Generate a TOTP secret and its enrollment URI."""
    from familytable.auth import totp
    from familytable.config import settings

    s = totp.generate_secret()
    # plain echo: rich would fold the long URI
    click.echo(f"Secret: {s}")
    click.echo(f"URI:    {totp.get_provisioning_uri(s, account, issuer or settings.totp_issuer)}")


@main.command()
@click.argument("secret")
def code(secret: str) -> None:
    """Print the current code for SECRET."""
    from familytable.auth import totp

    click.echo(totp.get_code(secret))


@main.command()
@click.argument("secret")
@click.argument("code")
@click.option("--window", type=int, default=None, help="Steps of clock skew to allow.")
def verify(secret: str, code: str, window: int | None) -> None:
    """Check CODE against SECRET. Exit status 0 on match."""
    from familytable.auth import totp
    from familytable.config import settings

    ok = totp.verify_code(code, secret, window=settings.totp_window if window is None else window)
    if ok:
        console.print("[green]valid[/green]")
    else:
        console.print("[red]invalid[/red]")
        sys.exit(1)


@main.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", type=int, default=8888)
def server(host: str, port: int) -> None:
    """Start the admin security API (FastAPI)."""
    import uvicorn

    from familytable.dashboard.app import app

    console.print(f"Starting admin security API on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
