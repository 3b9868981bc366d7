import nox

PYTHON_VERSION = "3.11"
PROJECT_ROOT = ".."


@nox.session(python=PYTHON_VERSION)
def tests(session):
    session.install("-e", f"{PROJECT_ROOT}[test]")
    session.run("pytest", "tests/unit", *session.posargs)


@nox.session(python=PYTHON_VERSION)
def integration(session):
    # Needs a Docker daemon for the Postgres testcontainer
    session.install("-e", f"{PROJECT_ROOT}[test]")
    session.run("pytest", "tests/integration", *session.posargs)


@nox.session(python=PYTHON_VERSION)
def lint(session):
    session.install("ruff")
    session.run("ruff", "check", ".")


@nox.session(python=PYTHON_VERSION)
def format(session):
    session.install("black", "ruff")
    session.run("black", "--check", "api", "common", "internal", "packages", "workers")
    session.run("ruff", "check", ".")
