# type: ignore
import os

from invoke import task


@task
def venv(ctx):
    """Create the development environment with uv, including test and dev extras."""
    print("Initializing development environment with uv...")
    ctx.run("uv sync --extra test --extra dev")
    print("Development environment initialization complete!")


@task
def lint(ctx):
    """
    Check style and types of the package and its tests.
    """
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx):
    """
    Run tests with coverage information.
    """
    ctx.run("pytest --cov=wledscan --cov-report=term-missing", pty=True)


@task
def mock(ctx, port=8080, name="WLED Mock"):
    """Serve a fake WLED controller on localhost for manual scans."""
    ctx.run(f"wledscan mock --host 127.0.0.1 --port {port} --name '{name}'", pty=True)


@task
def build_package(ctx):
    """
    Build sdist and wheel into dist/.
    """
    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task
def release(ctx):
    """Build the package and publish it with uv."""
    token = os.getenv("PYPI_TOKEN")
    if not token:
        raise ValueError("PYPI_TOKEN environment variable is not set")

    ctx.run("invoke build-package")
    ctx.run(f"uv publish --token {token}")
