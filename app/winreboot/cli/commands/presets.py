"""Preset commands.

Lists the available removal presets and shows what a preset expands to.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.types import get_settings, handle_errors
from winreboot.servicing.presets import NOOP_PROFILES, PresetResolver, is_noop_profile
from winreboot.utils.formatting import console, create_table, print_info

app = typer.Typer(
    help="List and inspect removal presets.",
    no_args_is_help=True,
)


@app.command("list")
def list_presets(ctx: typer.Context) -> None:
    """List available removal presets (user presets shadow bundled ones)."""
    settings = get_settings(ctx)
    resolver = PresetResolver(search_dirs=[settings.presets_dir])

    table = create_table("Removal presets")
    table.add_column("Name", no_wrap=True)
    table.add_column("Source")
    table.add_column("Paths", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Includes", style="muted")

    with handle_errors():
        for name in resolver.list_profiles():
            origin, _source = resolver.locate(name)
            profile = resolver.load_profile(name)
            table.add_row(
                name,
                origin,
                str(profile.path_count),
                str(profile.token_count),
                ", ".join(profile.includes),
            )
    noop_names = " | ".join(sorted(NOOP_PROFILES))
    table.add_row(noop_names, "built-in", "0", "0", "keeps the image untouched")
    console.print(table)


@app.command("show")
def show_preset(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Preset name.")],
    custom_list: Annotated[
        Path | None,
        typer.Option(
            "--custom-list",
            "-c",
            help="Extra removal list appended after the preset.",
        ),
    ] = None,
) -> None:
    """Show the directives a preset expands to, in application order."""
    if is_noop_profile(name):
        print_info(f"'{name}' keeps the image untouched.")
        return

    settings = get_settings(ctx)
    resolver = PresetResolver(search_dirs=[settings.presets_dir])

    with handle_errors():
        directives = resolver.resolve(name, custom_list)

    table = create_table(f"Preset: {name}")
    table.add_column("#", justify="right", style="muted")
    table.add_column("Kind")
    table.add_column("Value")
    for number, directive in enumerate(directives, start=1):
        kind = "path" if directive.is_path else "token"
        table.add_row(str(number), kind, directive.value)
    console.print(table)
