"""
Click CLI for the OAuth2 SSO engine.

Commands:
    providers       List registered providers and their status
    authorize-url   Print the sign-in URL for a provider
    serve           Run the SSO server
"""

import json
import logging
import sys
from typing import Optional

import click

from .config import SSOSettings
from .exceptions import OAuth2SSOError
from .flow import OAuthFlowController
from .services import SSOServices
from .stores import ProviderRegistry


def print_error(message: str) -> None:
    """Print error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def _load_services(ctx: click.Context) -> SSOServices:
    settings: SSOSettings = ctx.obj["settings"]
    if not settings.providers_file:
        print_error("No providers file. Use --providers-file or set SSO_PROVIDERS_FILE.")
        sys.exit(2)
    try:
        registry = ProviderRegistry.from_yaml(settings.providers_file)
    except OAuth2SSOError as e:
        print_error(str(e))
        sys.exit(2)
    return SSOServices.in_memory(registry, settings=settings)


@click.group()
@click.option(
    "--providers-file",
    type=click.Path(),
    envvar="SSO_PROVIDERS_FILE",
    help="YAML file with provider registrations",
)
@click.option("--base-url", envvar="SSO_BASE_URL", help="Public base URL of the site")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(
    ctx: click.Context,
    providers_file: Optional[str],
    base_url: Optional[str],
    verbose: bool,
) -> None:
    """OAuth2 single sign-on tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
    )
    overrides = {}
    if providers_file:
        overrides["providers_file"] = providers_file
    if base_url:
        overrides["base_url"] = base_url

    ctx.ensure_object(dict)
    ctx.obj["settings"] = SSOSettings(**overrides)


@cli.command("providers")
@click.option("--json", "output_json", is_flag=True, help="JSON output")
@click.pass_context
def list_providers(ctx: click.Context, output_json: bool) -> None:
    """List registered providers."""
    services = _load_services(ctx)
    providers = services.providers.get_all_providers()

    if output_json:
        click.echo(
            json.dumps(
                [
                    {
                        "key": p.key,
                        "name": p.name,
                        "configured": p.is_configured(),
                        "active": p.active,
                        "default": p.is_default,
                        "allow_access_tokens": p.allow_access_tokens,
                    }
                    for p in providers
                ],
                indent=2,
            )
        )
        return

    if not providers:
        click.echo("No providers registered.")
        return

    for provider in providers:
        flags = []
        if not provider.is_configured():
            flags.append("not configured")
        if not provider.active:
            flags.append("inactive")
        if provider.is_default:
            flags.append("default")
        if provider.allow_access_tokens:
            flags.append("issues API tokens")
        suffix = f" ({', '.join(flags)})" if flags else ""
        click.echo(f"{provider.key}: {provider.name or provider.key}{suffix}")


@cli.command("authorize-url")
@click.argument("provider_key")
@click.option("--target", default=None, help="Where to send the user after sign-in")
@click.pass_context
def authorize_url(ctx: click.Context, provider_key: str, target: Optional[str]) -> None:
    """Print the sign-in URL for PROVIDER_KEY."""
    services = _load_services(ctx)
    if services.providers.get_provider_by_key(provider_key) is None:
        print_error(f"Unknown provider: {provider_key}")
        sys.exit(1)

    flow = OAuthFlowController(provider_key, services)
    if not flow.is_configured():
        print_error(f"Provider {provider_key} has no client ID or secret.")
        sys.exit(1)

    click.echo(flow.authorize_uri({"target": target} if target else None))


@cli.command("serve")
def serve() -> None:
    """Run the SSO server (settings from SSO_* environment variables)."""
    from .server.main import run

    run()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
