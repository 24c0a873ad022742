import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ClientSettings, load_settings
from .errors import PlanningClientError
from .factory import create_planner
from .models import DomainInfo, ParserOptions, Plan, ProblemInfo
from .packages import PackagedPlanners
from .parser import PlanOutputParser


class ConsoleResponseHandler:
    def __init__(self) -> None:
        self.plans: List[Plan] = []

    def handle_output(self, text: str) -> None:
        print(text, end="" if text.endswith("\n") else "\n")

    def handle_plan(self, plan: Plan) -> None:
        self.plans.append(plan)
        print(f"Plan #{len(self.plans)} ({len(plan)} steps, makespan {plan.computed_makespan():g}):")
        print(plan.text)

    def provide_planner_options(self, metadata: Dict[str, Any]) -> None:
        return None


def _read_pddl(path: str) -> tuple:
    file_path = Path(path)
    return file_path.stem, file_path.read_text(encoding="utf-8")


def _apply_overrides(settings: ClientSettings, args: argparse.Namespace) -> ClientSettings:
    update = {
        "service_url": getattr(args, "url", None),
        "service_kind": getattr(args, "kind", None),
        "authentication_token": getattr(args, "token", None),
        "request_options": getattr(args, "options", None),
        "timeout_s": getattr(args, "timeout", None),
    }
    update = {k: v for k, v in update.items() if v is not None}
    return settings.model_copy(update=update) if update else settings


async def _run_plan(settings: ClientSettings, domain_path: str, problem_path: str) -> int:
    domain_name, domain_text = _read_pddl(domain_path)
    problem_name, problem_text = _read_pddl(problem_path)
    planner = create_planner(settings)
    handler = ConsoleResponseHandler()
    try:
        plans = await planner.plan(
            DomainInfo(domain_name, domain_text),
            ProblemInfo(problem_name, problem_text),
            PlanOutputParser(ParserOptions(epsilon=settings.epsilon)),
            handler,
        )
    finally:
        await planner.close()
    print(f"Plans returned: {len(plans)}")
    return 0


async def _run_packages(url: str) -> int:
    packages = PackagedPlanners(url)
    try:
        manifests = await packages.get_manifests()
    finally:
        await packages.close()
    if not manifests:
        print("No planner packages available.")
        return 0
    for manifest in manifests:
        marker = "" if manifest.runnable else " (not runnable)"
        line = f"- {manifest.package_name or manifest.name}{marker}"
        if manifest.description:
            line += f": {manifest.description}"
        print(line)
        solve = manifest.solve_service()
        if solve:
            for arg in solve.args:
                if arg.name not in ("domain", "problem"):
                    print(f"    {arg.name} [{arg.type}] {arg.description}")
    return 0


def run_plan(args: argparse.Namespace) -> int:
    settings = _apply_overrides(load_settings(args.config), args)
    try:
        return asyncio.run(_run_plan(settings, args.domain, args.problem))
    except PlanningClientError as exc:
        print(f"Planning failed: {exc}")
        return 1


def run_packages(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    try:
        return asyncio.run(_run_packages(args.url or settings.package_index_url))
    except PlanningClientError as exc:
        print(f"Failed to list packages: {exc}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PDDL planning service client")
    parser.add_argument("--config", type=Path, default=None, help="Path to a JSON settings file")
    parser.add_argument("--verbose", action="store_true", help="Log request lifecycle")
    subparsers = parser.add_subparsers(dest="command")

    plan = subparsers.add_parser("plan", help="Solve a planning problem remotely")
    plan.add_argument("domain", help="PDDL domain file")
    plan.add_argument("problem", help="PDDL problem file")
    plan.add_argument("--url", help="Planning service URL")
    plan.add_argument("--kind", choices=["sync", "async", "package"], help="Service dialect")
    plan.add_argument("--token", help="Bearer token")
    plan.add_argument("--options", help="Query string appended to the service URL")
    plan.add_argument(
        "--timeout",
        type=float,
        help="Planner timeout in seconds (async service only; sync waits 60 s and package 20 s)",
    )

    packages = subparsers.add_parser("packages", help="List planner packages")
    packages.add_argument("--url", help="Package index URL")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if args.command == "plan":
        return run_plan(args)
    if args.command == "packages":
        return run_packages(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
