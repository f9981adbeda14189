import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from ipflang.check import Severity
from ipflang.composition import compose_files
from ipflang.config import VerifierSettings, configure_logging
from ipflang.errors import CompositionError, Err, EvaluationError, InputValueError, Ok, Result
from ipflang.evaluator import ComputeResult, bind
from ipflang.ingest import load_values
from ipflang.parser import parse
from ipflang.provenance import ComputationProvenance
from ipflang.report import (
    analysis_json,
    completeness_json,
    compute_json,
    metrics_json,
    provenance_json,
    render_composition,
    render_compute,
    render_diagnostics,
    render_info,
    render_provenance,
    render_verification,
    render_verification_results,
    verification_json,
)
from ipflang.script import Script
from ipflang.values import IPFValue
from ipflang.verification import run_verifications, verify_completeness


def load_script(path: str) -> Result[Script, str]:
    """Read and parse one script file; the error is a printable report."""
    try:
        source = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        return Err(f"{path}: {e.strerror or e}")
    result = parse(source)
    if not result.is_valid or result.script is None:
        return Err(render_diagnostics(path, result.diagnostics).rstrip())
    return Ok(result.script)


def _load_values(script: Script, inputs: str | None) -> Result[dict[str, IPFValue], str]:
    if inputs is None:
        return Ok({})
    try:
        return Ok(load_values(script, inputs))
    except OSError as e:
        return Err(f"{inputs}: {e.strerror or e}")
    except InputValueError as e:
        return Err("\n".join(f"{inputs}: {p}" for p in e.problems))


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2))


def handle_parse(files: Sequence[str]) -> int:
    """Report diagnostics for each file; fails if any file has errors."""
    failed = False
    for path in files:
        try:
            source = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            print(f"{path}: {e.strerror or e}", file=sys.stderr)
            failed = True
            continue
        result = parse(source)
        print(render_diagnostics(path, result.diagnostics), end="")
        failed = failed or any(d.severity is Severity.ERROR for d in result.diagnostics)
    return 1 if failed else 0


def handle_info(path: str) -> int:
    match load_script(path):
        case Ok(script):
            print(render_info(script), end="")
            return 0
        case Err(message):
            print(message, file=sys.stderr)
            return 1


Outcome = tuple[Mapping[str, IPFValue], ComputeResult | ComputationProvenance]


def _evaluate(
    script: Script,
    inputs: str | None,
    *,
    provenance: bool,
    counterfactuals: bool,
) -> Result[Outcome, str]:
    match _load_values(script, inputs):
        case Ok(values):
            pass
        case Err(message):
            return Err(message)
    try:
        evaluation = bind(script, values)
        if counterfactuals:
            return Ok((evaluation.values, evaluation.compute_with_counterfactuals()))
        if provenance:
            return Ok((evaluation.values, evaluation.compute_with_provenance()))
        return Ok((evaluation.values, evaluation.compute()))
    except EvaluationError as e:
        return Err(f"Evaluation error: {e}")


def _outcome_json(outcome: Outcome) -> dict[str, Any]:
    _, result = outcome
    if isinstance(result, ComputationProvenance):
        return provenance_json(result)
    return compute_json(result)


def _outcome_text(outcome: Outcome) -> str:
    values, result = outcome
    if isinstance(result, ComputationProvenance):
        return render_provenance(result)
    return render_compute(result, dict(values))


def handle_run(
    path: str,
    inputs: str | None,
    *,
    provenance: bool,
    counterfactuals: bool,
    as_json: bool,
) -> int:
    match load_script(path):
        case Ok(script):
            pass
        case Err(message):
            print(message, file=sys.stderr)
            return 1

    match _evaluate(script, inputs, provenance=provenance, counterfactuals=counterfactuals):
        case Ok(outcome):
            if as_json:
                _dump(_outcome_json(outcome))
            else:
                print(_outcome_text(outcome), end="")
            return 0
        case Err(message):
            print(message, file=sys.stderr)
            return 1


def handle_verify(path: str, *, completeness: bool, monotonicity: bool, as_json: bool) -> int:
    """Run the embedded VERIFY directives, then the all-fees completeness sweep.

    Only the directives decide the exit code; the sweep is informational.
    ``--monotonicity`` skips the sweep and ``--completeness`` keeps it.
    """
    match load_script(path):
        case Ok(script):
            pass
        case Err(message):
            print(message, file=sys.stderr)
            return 1

    match VerifierSettings.from_env():
        case Ok(settings):
            pass
        case Err(e):
            print(f"Invalid verifier settings: {e}", file=sys.stderr)
            return 1

    results = run_verifications(script, settings)
    sweep = None if monotonicity else verify_completeness(script, settings)

    if as_json:
        data = verification_json(results)
        if sweep is not None:
            data["analysis"] = [completeness_json(r) for r in sweep.fee_reports]
        _dump(data)
    else:
        if script.verifications:
            print("Embedded verification directives:")
            print(render_verification_results(results), end="")
        else:
            print("No VERIFY directives in script.")
        if sweep is not None:
            print(
                render_verification(
                    completeness=sweep,
                    completeness_heading="Completeness analysis (informational)",
                ),
                end="",
            )
        if results.passed:
            print("All verification checks passed.")
        else:
            print("Verification completed with errors.")
    return 0 if results.passed else 1


def handle_compose(
    files: Sequence[str],
    inputs: str | None,
    *,
    provenance: bool,
    analysis: bool,
    as_json: bool,
) -> int:
    """Compose FILES as a parent-first chain and evaluate the last one."""
    scripts: list[tuple[str, Script]] = []
    for path in files:
        match load_script(path):
            case Ok(script):
                scripts.append((Path(path).stem, script))
            case Err(message):
                print(message, file=sys.stderr)
                return 1

    try:
        composer, composed = compose_files(scripts, sources=list(files))
        analyses = [composer.analyze_inheritance(jid) for jid, _ in scripts[1:]] if analysis else []
        metrics = composer.calculate_metrics() if analysis else None
    except CompositionError as e:
        for problem in e.problems:
            print(f"Composition error: {problem}", file=sys.stderr)
        return 1

    match _evaluate(composed.script, inputs, provenance=provenance, counterfactuals=False):
        case Ok(outcome):
            pass
        case Err(message):
            print(message, file=sys.stderr)
            return 1

    if as_json:
        data: dict[str, Any] = {"applied_jurisdictions": list(composed.applied_jurisdictions)}
        if metrics is not None:
            data["analysis"] = [analysis_json(a) for a in analyses]
            data["metrics"] = metrics_json(metrics)
        data["result"] = _outcome_json(outcome)
        _dump(data)
    else:
        print(render_composition(composed, analyses, metrics))
        print(_outcome_text(outcome), end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ipflang",
        description="Parse, evaluate, compose and verify IPFLang fee schedules",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Command: parse
    parse_parser = subparsers.add_parser("parse", help="Parse and type-check script file(s).")
    parse_parser.add_argument("files", nargs="+", metavar="FILE", help="IPFLang script file(s).")

    # Command: info
    info_parser = subparsers.add_parser("info", help="Summarize a script's declarations.")
    info_parser.add_argument("file", metavar="FILE", help="IPFLang script file.")

    # Command: run
    run_parser = subparsers.add_parser("run", help="Compute fees for a script.")
    run_parser.add_argument("file", metavar="FILE", help="IPFLang script file.")
    run_parser.add_argument(
        "--inputs",
        metavar="JSON",
        help="JSON file of input values. Missing inputs use their defaults.",
    )
    run_parser.add_argument(
        "--provenance", "-p", action="store_true", help="Show the per-case audit trail."
    )
    run_parser.add_argument(
        "--counterfactuals",
        "-c",
        action="store_true",
        help="Show what-if totals for alternative input values (implies --provenance).",
    )
    run_parser.add_argument("--json", action="store_true", help="Emit JSON instead of text.")

    # Command: verify
    verify_parser = subparsers.add_parser(
        "verify",
        help="Run the script's VERIFY directives and an all-fees completeness sweep.",
    )
    verify_parser.add_argument("file", metavar="FILE", help="IPFLang script file.")
    sweep = verify_parser.add_mutually_exclusive_group()
    sweep.add_argument(
        "--completeness",
        action="store_true",
        help="Directives plus the completeness sweep (default).",
    )
    sweep.add_argument(
        "--monotonicity",
        action="store_true",
        help="Directives only; skip the completeness sweep.",
    )
    verify_parser.add_argument(
        "--json", action="store_true", help="Emit JSON instead of text."
    )

    # Command: compose
    compose_parser = subparsers.add_parser(
        "compose",
        help="Compose scripts in inheritance order (parent first) and evaluate the last.",
    )
    compose_parser.add_argument("files", nargs="+", metavar="FILE", help="IPFLang script files.")
    compose_parser.add_argument("--inputs", metavar="JSON", help="JSON file of input values.")
    compose_parser.add_argument(
        "--provenance", "-p", action="store_true", help="Show the per-case audit trail."
    )
    compose_parser.add_argument(
        "--analysis", "-a", action="store_true", help="Show inherited vs. overridden entities."
    )
    compose_parser.add_argument("--json", action="store_true", help="Emit JSON instead of text.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    match args.command:
        case "parse":
            return handle_parse(args.files)
        case "info":
            return handle_info(args.file)
        case "run":
            return handle_run(
                args.file,
                args.inputs,
                provenance=args.provenance,
                counterfactuals=args.counterfactuals,
                as_json=args.json,
            )
        case "verify":
            return handle_verify(
                args.file,
                completeness=args.completeness,
                monotonicity=args.monotonicity,
                as_json=args.json,
            )
        case "compose":
            return handle_compose(
                args.files,
                args.inputs,
                provenance=args.provenance,
                analysis=args.analysis,
                as_json=args.json,
            )
        case None:
            parser.print_help()
            return 1
        case _:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            parser.print_help()
            return 1


if __name__ == "__main__":
    sys.exit(main())
