"""
Script CLI Commands

Commands for generating and adjusting technical scripts, plus offline
inspection of prompt parsing and adjustment scopes.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import click

from ..services.prompt_parser import parse_prompt
from ..services.scoped_adjustment import ScriptScopeNotFoundError, describe_target, detect_adjust_scope
from ..services.script_orchestrator import ScriptOrchestrator, ScriptRun
from ..services.style_training_service import ScriptStyleProfileService


logger = logging.getLogger(__name__)


@click.group(name="script")
def script_group():
    """Generate and adjust creator scripts"""
    pass


def _echo_json(payload: Any):
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _echo_run(run: ScriptRun):
    result = run.result
    quality = result.quality
    click.echo("=" * 60)
    click.echo(f"🎬 {result.draft.title}")
    click.echo("=" * 60)
    click.echo()
    click.echo(result.draft.content)
    click.echo()
    click.echo(
        f"📊 Quality: {quality.perceived_quality:.2f} "
        f"(hook {quality.hook_strength:.2f}, CTA {quality.cta_strength:.2f}, scenes {quality.scene_count})"
    )
    model = result.model_used or "local fallback"
    click.echo(f"🤖 Model: {model}" + (f" ({result.fallback_reason})" if result.fallback_reason else ""))
    if result.contract.synthesized_scenes:
        click.echo(f"⚠️  Scenes built from defaults: {result.contract.synthesized_scenes}")
    if result.adjust_meta and result.adjust_meta.revision_reverted:
        click.echo("⚠️  Revision reverted: the adjusted text lost too much content")


async def _with_orchestrator(action):
    orchestrator = ScriptOrchestrator()
    try:
        return await action(orchestrator)
    finally:
        await orchestrator.style_service.wait_for_refreshes()


@script_group.command(name="generate")
@click.option('--creator', '-c', required=True, help='Creator ID')
@click.option('--prompt', '-p', required=True, help='Free-text request')
@click.option('--json', 'as_json', is_flag=True, help='Print the full result as JSON')
def generate_script(creator: str, prompt: str, as_json: bool):
    """
    Generate a new technical script.

    Examples:
        scriptintel script generate -c <uuid> -p "roteiro sobre produtividade com humor"
    """
    try:
        run = asyncio.run(_with_orchestrator(lambda o: o.create_script(creator, prompt)))
    except ValueError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()

    if as_json:
        _echo_json(run.model_dump(mode="json"))
    else:
        _echo_run(run)


@script_group.command(name="adjust")
@click.option('--creator', '-c', required=True, help='Creator ID')
@click.option('--prompt', '-p', required=True, help='Adjustment request')
@click.option('--file', '-f', 'file_path', required=True, type=click.Path(exists=True, dir_okay=False), help='Current script file')
@click.option('--title', '-t', default='', help='Current script title')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the adjusted script here')
@click.option('--json', 'as_json', is_flag=True, help='Print the full result as JSON')
def adjust_script(creator: str, prompt: str, file_path: str, title: str, output: Optional[str], as_json: bool):
    """
    Adjust an existing script (whole text, one scene or one paragraph).

    Examples:
        scriptintel script adjust -c <uuid> -f roteiro.txt -p "Ajuste apenas a Cena 2 para ficar mais curta"
    """
    content = Path(file_path).read_text(encoding="utf-8")
    try:
        run = asyncio.run(_with_orchestrator(lambda o: o.adjust_script(creator, prompt, title, content)))
    except ScriptScopeNotFoundError as e:
        if as_json:
            _echo_json(e.to_dict())
        click.echo(f"❌ {e}", err=True)
        raise click.Abort()
    except ValueError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()

    if output:
        Path(output).write_text(run.result.draft.content, encoding="utf-8")
        click.echo(f"💾 Saved to {output}", err=True)

    if as_json:
        _echo_json(run.model_dump(mode="json"))
    else:
        _echo_run(run)


@script_group.command(name="scope")
@click.option('--prompt', '-p', required=True, help='Adjustment request')
@click.option('--json', 'as_json', is_flag=True, help='Print as JSON')
def show_scope(prompt: str, as_json: bool):
    """Show how an adjustment request would be scoped (offline)."""
    scope = detect_adjust_scope(prompt)
    if as_json:
        _echo_json(scope.model_dump(mode="json"))
        return
    click.echo(f"Mode:   {scope.mode.value}")
    click.echo(f"Target: {describe_target(scope.target)}")


@script_group.command(name="parse-prompt")
@click.option('--prompt', '-p', required=True, help='Free-text request')
@click.option('--json', 'as_json', is_flag=True, help='Print as JSON')
def show_parsed_prompt(prompt: str, as_json: bool):
    """Show detected categories, prompt mode and narrative intent (offline)."""
    parsed = parse_prompt(prompt)
    if as_json:
        _echo_json(parsed.model_dump(mode="json"))
        return
    click.echo(f"Mode: {parsed.prompt_mode.value}")
    for dimension, value in parsed.explicit_categories.model_dump().items():
        matched = parsed.matched_terms.get(dimension)
        click.echo(f"   {dimension:<11} {value or '-'}" + (f"  (\"{matched}\")" if matched else ""))
    intent = parsed.intent
    click.echo(f"Humor: {intent.wants_humor}  Engagement: {intent.wants_engagement}  Subject: {intent.subject_hint or '-'}")


@script_group.command(name="style-profile")
@click.option('--creator', '-c', required=True, help='Creator ID')
@click.option('--rebuild', is_flag=True, help='Rebuild from script entries before showing')
@click.option('--json', 'as_json', is_flag=True, help='Print as JSON')
def show_style_profile(creator: str, rebuild: bool, as_json: bool):
    """Show (or rebuild) a creator's persisted style profile."""
    service = ScriptStyleProfileService()
    action = service.rebuild_profile if rebuild else service.get_profile
    try:
        profile = asyncio.run(action(creator))
    except Exception as e:
        click.echo(f"❌ Style profile failed: {e}", err=True)
        raise click.Abort()

    if as_json:
        _echo_json(profile.model_dump(mode="json"))
        return

    click.echo(f"📝 Style profile {profile.profile_version} for {creator}")
    click.echo(f"   Sample size: {profile.sample_size}")
    mix = profile.source_mix
    click.echo(f"   Sources: manual={mix.manual} ai={mix.ai} planner={mix.planner}")
    signals = profile.style_signals
    if signals:
        click.echo(f"   Avg sentence length: {signals.avg_sentence_length}")
        click.echo(f"   Emoji density: {signals.emoji_density}")
        click.echo(f"   CTA patterns: {', '.join(signals.cta_patterns) or '-'}")
    stats = profile.exclusion_stats
    click.echo(f"   Excluded: {stats.total_excluded} of {stats.considered}")
