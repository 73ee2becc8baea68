"""Command-line interface for tablekit."""

import rich_click as click

from .schema import schema_command

# Configure rich-click styling
click.rich_click.TEXT_MARKUP = "rich"
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.STYLE_OPTION = "bold cyan"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_COMMAND = "bold green"
click.rich_click.STYLE_SWITCH = "bold blue"


@click.group(name="tablekit")
@click.version_option(version="0.1.0", prog_name="tablekit")
def main() -> None:
    """🗂️ **tablekit** - Schema-driven tables and relationships.

    Tools for validating and inspecting the schema documents that drive the
    engine.
    """
    pass


# Add commands to the group
main.add_command(schema_command)


if __name__ == "__main__":
    main()


__all__ = ["main"]
