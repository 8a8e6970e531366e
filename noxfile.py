from __future__ import annotations

import nox

nox.options.error_on_missing_interpreters = True


def tests_impl(
    session: nox.Session,
    extras: str = "test,trio",
    pytest_extra_args: list[str] = [],
) -> None:
    # Install deps and the package itself.
    session.install(f".[{extras}]" if extras else ".", "coverage")
    # Print the Python version and bytesize.
    session.run("python", "--version")
    session.run("python", "-c", "import struct; print(struct.calcsize('P') * 8)")
    session.run("python", "-c", "import greenlet; print(greenlet.__version__)")

    # Environment variables being passed to the pytest run.
    pytest_session_envvars = {
        "PYTHONWARNINGS": "always::DeprecationWarning",
    }

    # We use parallel mode and then combine in a later CI step
    session.run(
        "python",
        "-m",
        "coverage",
        "run",
        "--parallel-mode",
        "-m",
        "pytest",
        "-v",
        "-ra",
        "--tb=native",
        "--durations=10",
        "--strict-config",
        "--strict-markers",
        *pytest_extra_args,
        *(session.posargs or ("test/",)),
        env=pytest_session_envvars,
    )


@nox.session(python=["3.9", "3.10", "3.11", "3.12", "3.13"])
def test(session: nox.Session) -> None:
    tests_impl(session)


@nox.session(python="3")
def test_without_trio(session: nox.Session) -> None:
    """The trio hook is optional, everything else must work without it."""
    tests_impl(session, extras="test")


@nox.session()
def format(session: nox.Session) -> None:
    """Run code formatters."""
    lint(session)


@nox.session(python="3.12")
def lint(session: nox.Session) -> None:
    session.install("pre-commit")
    session.run("pre-commit", "run", "--all-files")

    mypy(session)


@nox.session(python="3.12")
def mypy(session: nox.Session) -> None:
    """Run mypy."""
    session.install("mypy", ".[test,trio]")
    session.run("mypy", "--version")
    session.run(
        "mypy",
        "-m",
        "noxfile",
        "-p",
        "fiberresolve",
        "-p",
        "test",
    )
