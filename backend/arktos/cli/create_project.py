"""Scaffold a new backend project from the Arktos application tree.

Usage:
    arktos-create my-awesome-api [--directory ./projects]

The application packages are copied into ``<dir>/<name>/backend/<name>``
and the project files (pyproject.toml, .env.example, .gitignore,
README.md) are rendered from the jinja2 templates next to this module.
"""

import argparse
import re
import shutil
import sys
from pathlib import Path

import jinja2

APP_DIR = Path(__file__).resolve().parent.parent
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

PROJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
APP_PACKAGES = ("api", "config", "core", "db", "models", "schemas", "services")
APP_MODULES = ("main.py",)
RENDERED_FILES = {
    "pyproject.toml.j2": "pyproject.toml",
    "env.example.j2": ".env.example",
    "gitignore.j2": ".gitignore",
    "README.md.j2": "README.md",
}
IGNORED = shutil.ignore_patterns("__pycache__", "*.pyc", ".pytest_cache", ".env")


class ProjectCreationError(Exception):
    pass


def validate_project_name(name: str) -> str:
    if not name or not PROJECT_NAME_PATTERN.match(name):
        raise ProjectCreationError(
            "Invalid project name. Use only letters, numbers, hyphens, and underscores."
        )
    return name


def render_project_files(target: Path, project_name: str):
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(searchpath=str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
    )
    for template_name, file_name in RENDERED_FILES.items():
        content = env.get_template(template_name).render(project_name=project_name)
        (target / file_name).write_text(content, encoding="utf-8")


def copy_application(target: Path, project_name: str):
    app_target = target / "backend" / project_name
    app_target.mkdir(parents=True)
    for package in APP_PACKAGES:
        shutil.copytree(APP_DIR / package, app_target / package, ignore=IGNORED)
    for module in APP_MODULES:
        shutil.copy2(APP_DIR / module, app_target / module)


def create_project(project_name: str, directory: Path = Path(".")) -> Path:
    """Create the project directory and populate it.

    Args:
        project_name: Name of the new project and its directory.
        directory: Parent directory the project is created in.

    Returns:
        Path: The created project directory.

    Raises:
        ProjectCreationError: Invalid name, existing target, or a failure
            while writing files (the partial directory is removed).
    """
    validate_project_name(project_name)
    target = Path(directory) / project_name
    if target.exists():
        raise ProjectCreationError(f"Directory '{target}' already exists.")

    try:
        print("Creating project directory...")
        target.mkdir(parents=True)
        print("Copying application files...")
        copy_application(target, project_name)
        print("Writing configuration files...")
        render_project_files(target, project_name)
    except (OSError, jinja2.TemplateError) as exc:
        shutil.rmtree(target, ignore_errors=True)
        raise ProjectCreationError(f"Error creating project: {exc}") from exc

    return target


def print_next_steps(target: Path, project_name: str):
    print("Project created successfully!")
    print()
    print("Next steps:")
    print(f"  cd {target}")
    print("  pip install -e '.[test]'")
    print("  cp .env.example backend/.env")
    print("  # Edit backend/.env with your database URL, JWT secrets and Resend key")
    print(f"  python backend/{project_name}/main.py")
    print()
    print("Documentation:")
    print("  Backend API: http://localhost:8000/docs")
    print("  Resend for emails: https://resend.com")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="arktos-create",
        description="Arktos - FastAPI backend boilerplate with JWT authentication",
    )
    parser.add_argument("project_name", help="Name of the project to create")
    parser.add_argument(
        "--directory",
        "-d",
        type=Path,
        default=Path("."),
        help="Parent directory for the new project (default: current directory)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    print(f"Creating Arktos project: {args.project_name}")
    print()
    try:
        target = create_project(args.project_name, args.directory)
    except ProjectCreationError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    print_next_steps(target, args.project_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
