#!/usr/bin/env python3
"""
Проверка проекта request-engine перед коммитом.

Шаги:
- black (форматирование)
- ruff (линтинг)
- mypy (типы) - пропускается с --fast
- pytest - пропускается с --skip-tests

Usage:
    python scripts/check.py
    python scripts/check.py --fast
    python scripts/check.py --fix
"""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List, NamedTuple


class Colors:
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    BOLD = '\033[1m'
    END = '\033[0m'


class Step(NamedTuple):
    name: str
    description: str
    command: List[str]


def run_step(step: Step) -> bool:
    """Запустить шаг; отсутствующий инструмент не считается ошибкой."""
    print(f"\n{Colors.BOLD}{Colors.BLUE}▶ {step.description}{Colors.END}")

    try:
        result = subprocess.run(
            step.command,
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='ignore'
        )
    except FileNotFoundError:
        print(f"{Colors.YELLOW}⚠ Command not found: {step.command[0]} - SKIPPED{Colors.END}")
        return True

    if result.returncode == 0:
        print(f"{Colors.GREEN}✓ {step.description} - OK{Colors.END}")
        if step.name == "Pytest":
            summary = [line for line in result.stdout.splitlines() if ' passed' in line or ' failed' in line]
            if summary:
                print(summary[-1])
        return True

    print(f"{Colors.RED}✗ {step.description} - FAILED{Colors.END}")
    print((result.stdout + result.stderr)[-2000:])
    return False


def build_steps(args: argparse.Namespace, src_dir: Path, tests_dir: Path) -> List[Step]:
    paths = [str(src_dir), str(tests_dir)]

    steps = [
        Step("Black", "Форматирование кода (black)", ["black", *paths])
        if args.fix else
        Step("Black", "Проверка форматирования (black)", ["black", "--check", *paths]),
        Step("Ruff", "Линтинг кода (ruff)", ["ruff", "check", *paths] + (["--fix"] if args.fix else [])),
    ]
    if not args.fast:
        steps.append(Step("Mypy", "Проверка типов (mypy)", ["mypy", str(src_dir), "--ignore-missing-imports"]))
    if not args.skip_tests:
        steps.append(Step("Pytest", "Тесты (pytest)", ["pytest", "-q", "-o", "addopts="]))
    return steps


def main() -> int:
    parser = argparse.ArgumentParser(description="Проверка качества кода")
    parser.add_argument("--fast", action="store_true", help="Без mypy")
    parser.add_argument("--fix", action="store_true", help="Автоматические исправления")
    parser.add_argument("--skip-tests", action="store_true", help="Только линтеры")
    args = parser.parse_args()

    root_dir = Path(__file__).parent.parent
    steps = build_steps(args, root_dir / "src", root_dir / "tests")

    print(f"\n{Colors.BOLD}{'=' * 60}")
    print("  Request Engine - Проверка качества")
    print(f"{'=' * 60}{Colors.END}")

    results = [(step.name, run_step(step)) for step in steps]

    print(f"\n{Colors.BOLD}{'=' * 60}")
    print("  ИТОГОВЫЙ ОТЧЁТ")
    print(f"{'=' * 60}{Colors.END}\n")
    for name, success in results:
        status = f"{Colors.GREEN}✓ PASSED" if success else f"{Colors.RED}✗ FAILED"
        print(f"{status:17}{Colors.END} {name}")

    if all(success for _, success in results):
        print(f"\n{Colors.GREEN}{Colors.BOLD}✓ ВСЕ ПРОВЕРКИ ПРОШЛИ УСПЕШНО!{Colors.END}\n")
        return 0

    print(f"\n{Colors.RED}{Colors.BOLD}✗ ЕСТЬ ОШИБКИ!{Colors.END}\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
