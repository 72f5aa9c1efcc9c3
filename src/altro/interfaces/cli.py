from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich import print
from rich.markup import escape
from rich.table import Table

from altro.core.config import DEFAULT_CONFIG_PATH, load_config
from altro.core.errors import AltroError
from altro.core.homonyms import context_sense_labels
from altro.core.modes import Mode, available_modes
from altro.core.orchestrator import Orchestrator
from altro.core.pipelines import AdaptResult, adapt_pipeline, scan_pipeline
from altro.core.prompts import build_system_prompt, build_user_content
from altro.core.text import find_words
from altro.core.tokenizer import tokenize
from altro.core.validation import validate
from altro.core.vectors import (
    DomainSliders,
    Scenario,
    apply_opr_modulation,
    apply_scenario_coefficients,
    are_weights_in_standby,
    calculate_weights,
    get_active_pattern,
)
from altro.providers.llm import build_chat_client


app = typer.Typer(no_args_is_help=True, add_completion=False)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Подробный лог (DEBUG)"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_text(text: Optional[str], in_path: Optional[Path]) -> str:
    if in_path is not None:
        return in_path.read_text(encoding="utf-8")
    if text is None:
        typer.secho("Нужен текст (аргумент) или файл (--in).", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return text


def _parse_sliders(values: List[str], opr: float) -> DomainSliders:
    data: Dict[str, float] = {"opr": opr}
    for item in values:
        axis, sep, raw = item.partition("=")
        if not sep:
            typer.secho(f"Ожидалось ось=значение, получено: {item}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        try:
            data[axis.strip()] = float(raw)
        except ValueError:
            typer.secho(f"Некорректное значение оси {axis}: {raw}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
    try:
        return DomainSliders.from_mapping(data)
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _parse_resolved(values: List[str]) -> Dict[str, str]:
    resolved: Dict[str, str] = {}
    for item in values:
        key, sep, variant = item.partition("=")
        if sep:
            resolved[key.strip()] = variant.strip()
    return resolved


@app.command("modes")
def modes_cmd():
    table = Table(title="Режимы")
    table.add_column("mode", style="cyan")
    table.add_column("Описание")
    for name, description in available_modes().items():
        table.add_row(name, description)
    print(table)


@app.command("tokens")
def tokens_cmd(
    text: Optional[str] = typer.Argument(None, help="Исходный текст"),
    in_path: Optional[Path] = typer.Option(None, "--in", help="Файл с текстом"),
):
    table = Table(title="Токены")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("text")
    table.add_column("kind")
    table.add_column("флаги")
    for token in tokenize(_read_text(text, in_path)):
        if token.kind.value == "space":
            continue
        flags = [
            name
            for name, on in (
                ("stress", token.has_stress_mark),
                ("locked", token.is_locked),
                ("homonym", token.is_homonym_candidate),
                ("typo", token.is_misspelled),
            )
            if on
        ]
        table.add_row(str(token.id), escape(token.text), token.kind.value, ", ".join(flags) or "—")
    print(table)


@app.command("scan")
def scan_cmd(
    text: Optional[str] = typer.Argument(None, help="Исходный текст"),
    in_path: Optional[Path] = typer.Option(None, "--in", help="Файл с текстом"),
    mode: Mode = typer.Option(Mode.MIRROR, "--mode", help="Режим локальной обработки"),
    context_weight: float = typer.Option(0.0, "--context-weight", help="Вес контекста (0–1)"),
    resolve: List[str] = typer.Option([], "--resolve", help="Выбор омонима: <база>_<позиция>=<вариант>"),
    as_json: bool = typer.Option(False, "--json", help="Вывести результат санитации в JSON"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Путь к altro.yaml"),
):
    source = _read_text(text, in_path)
    result = scan_pipeline(
        source,
        mode=mode,
        context_weight=context_weight,
        resolved=_parse_resolved(resolve),
        config=load_config(config),
    )
    if as_json:
        typer.echo(json.dumps(result.sanitation.to_dict(), ensure_ascii=False, indent=2))
        return

    print("[bold cyan]Текст[/bold cyan]:")
    typer.echo(result.baseline.text)
    if result.baseline.notice:
        print(f"[dim]{result.baseline.notice}[/dim]")

    if result.sanitation.suggestions:
        table = Table(title="Подсказки")
        table.add_column("тип")
        table.add_column("фраза")
        table.add_column("исправление")
        table.add_column("уверенность", justify="right")
        for s in result.sanitation.suggestions:
            confidence = f"{s.confidence:.2f}" if s.confidence is not None else "—"
            table.add_row(s.kind, escape(s.phrase), escape(s.suggestion), confidence)
        print(table)

    if result.sanitation.homonym_instances:
        table = Table(title="Неразрешенные омонимы")
        table.add_column("ключ", style="cyan")
        table.add_column("слово")
        table.add_column("по контексту")
        for inst in result.sanitation.homonym_instances:
            table.add_row(escape(inst.key), escape(inst.word), escape(inst.suggested_variant or "—"))
        print(table)
        senses = context_sense_labels(find_words(source))
        if senses:
            print(f"[dim]Домены по контексту: {', '.join(senses)}[/dim]")

    state = "[green]готов[/green]" if result.sanitation.is_complete else "[yellow]требует уточнения[/yellow]"
    print(f"Статус: {state}")


@app.command("validate")
def validate_cmd(
    source: str = typer.Argument(..., help="Исходный текст"),
    adaptation: str = typer.Argument(..., help="Адаптированный текст"),
):
    result = validate(source, adaptation)
    color = {"PASSED": "green", "WARNING": "yellow"}.get(result.status.value, "red")
    print(f"[{color}]{result.status.value}[/{color}] ({result.stress_verdict.value})")
    for issue in result.issues:
        typer.echo(f"  {issue.word} @ {issue.position}: {issue.reason.value}")
    if not result.passed:
        raise typer.Exit(code=1)


@app.command("weights")
def weights_cmd(
    slider: List[str] = typer.Option([], "--slider", "-s", help="Ось=значение, например history=0.5"),
    opr: float = typer.Option(1.0, "--opr", help="OPR в диапазоне [-1, 1]"),
    scenario: Scenario = typer.Option(Scenario.WITHOUT, "--scenario", help="Сценарий"),
):
    sliders = apply_opr_modulation(apply_scenario_coefficients(_parse_sliders(slider, opr), scenario))
    weights = calculate_weights(sliders)

    table = Table(title="Эффективные веса")
    table.add_column("ось", style="cyan")
    table.add_column("значение", justify="right")
    for axis, value in sliders.to_dict().items():
        table.add_row(axis, f"{value:.3f}")
    for name, value in weights.to_dict().items():
        table.add_row(name, f"{value:.3f}" if isinstance(value, float) else str(value))
    print(table)

    pattern = get_active_pattern(sliders)
    print(f"Паттерн: {pattern.name} ({pattern.score:.2f})" if pattern else "Паттерн: —")
    if are_weights_in_standby(sliders):
        print("[dim]Веса в режиме ожидания[/dim]")


@app.command("prompt")
def prompt_cmd(
    text: Optional[str] = typer.Argument(None, help="Текст: показать и пользовательское сообщение"),
    mode: Mode = typer.Option(Mode.BRIDGE, "--mode", help="Режим"),
    slider: List[str] = typer.Option([], "--slider", "-s", help="Ось=значение"),
    opr: float = typer.Option(1.0, "--opr", help="OPR в диапазоне [-1, 1]"),
    scenario: Scenario = typer.Option(Scenario.WITHOUT, "--scenario", help="Сценарий"),
    directive: Optional[str] = typer.Option(None, "--directive", help="Пользовательская директива"),
    language: Optional[str] = typer.Option(None, "--lang", help="Целевой язык"),
):
    sliders = apply_opr_modulation(apply_scenario_coefficients(_parse_sliders(slider, opr), scenario))
    typer.echo(build_system_prompt(mode, sliders, directive=directive, target_language=language))
    if text:
        print("[bold cyan]user[/bold cyan]:")
        typer.echo(build_user_content(text))


def _echo_chunk(piece: str) -> None:
    typer.echo(piece, nl=False)


def _echo_reset() -> None:
    typer.echo()
    typer.secho("[таймаут: упрощенный повтор]", fg=typer.colors.YELLOW)


def _print_adapt(result: AdaptResult) -> None:
    print("[bold cyan]Адаптация[/bold cyan]:")
    typer.echo(result.text)
    print()
    v = result.validation
    print(f"Ударения: {v.status.value} ({v.stress_verdict.value}); уровень трансформации: {result.transformation_level}")
    g = result.generation
    flags = [name for name, on in (("degraded", g.degraded), ("isomorphism", g.isomorphism_fallback), ("deconstructed", g.deconstructed)) if on]
    print(f"[dim]session={g.session_id} mode={g.mode.value} {' '.join(flags)}[/dim]")
    if result.pattern:
        print(f"[dim]Паттерн: {result.pattern.name}[/dim]")


@app.command("adapt")
def adapt_cmd(
    text: Optional[str] = typer.Argument(None, help="Исходный текст"),
    in_path: Optional[Path] = typer.Option(None, "--in", help="Файл с текстом"),
    mode: Mode = typer.Option(Mode.BRIDGE, "--mode", help="Режим"),
    slider: List[str] = typer.Option([], "--slider", "-s", help="Ось=значение"),
    opr: float = typer.Option(1.0, "--opr", help="OPR в диапазоне [-1, 1]"),
    scenario: Scenario = typer.Option(Scenario.WITHOUT, "--scenario", help="Сценарий"),
    directive: Optional[str] = typer.Option(None, "--directive", help="Пользовательская директива"),
    language: Optional[str] = typer.Option(None, "--lang", help="Целевой язык"),
    resolve: List[str] = typer.Option([], "--resolve", help="Выбор омонима: <база>_<позиция>=<вариант>"),
    model: Optional[str] = typer.Option(None, "--model", help="Переопределить модель"),
    stream: bool = typer.Option(False, "--stream/--no-stream", help="Печатать ответ по мере генерации"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Путь к altro.yaml"),
):
    source = _read_text(text, in_path)
    if not source.strip():
        typer.secho("Текст не должен быть пустым.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    cfg = load_config(config)
    if model:
        cfg = cfg.model_copy(update={"generation": cfg.generation.model_copy(update={"model": model})})
    sliders = _parse_sliders(slider, opr)

    async def _run() -> AdaptResult:
        async with Orchestrator(build_chat_client(cfg.generation), cfg) as orchestrator:
            return await adapt_pipeline(
                orchestrator,
                source,
                mode=mode,
                sliders=sliders,
                scenario=scenario,
                directive=directive,
                target_language=language,
                resolved=_parse_resolved(resolve),
                on_chunk=_echo_chunk if stream else None,
                on_reset=_echo_reset if stream else None,
            )

    try:
        result = asyncio.run(_run())
    except AltroError as exc:
        if stream:
            typer.echo()
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if stream:
        typer.echo()
    _print_adapt(result)


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
