"""
Main CLI entry point for ScriptIntel
"""

import logging

import click

from ..core.observability import setup_logfire
from .script import script_group


@click.group()
@click.version_option(version='0.1.0')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose: bool):
    """
    ScriptIntel - Adaptive short-video script generation

    Generate and adjust scene-by-scene Reels scripts tailored to a creator's
    historical performance and writing style.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    setup_logfire(project_name='scriptintel')


# Register command groups
cli.add_command(script_group)


if __name__ == '__main__':
    cli()
