"""Nox sessions for the roover quality gates."""

from __future__ import annotations

import nox

SOURCES = ("src", "tests", "noxfile.py")

nox.options.sessions = ["lint", "typecheck", "tests"]


@nox.session
def lint(session: nox.Session) -> None:
    """Check lint and formatting; pass ``fix`` to apply changes instead."""
    session.install("ruff")
    if "fix" in session.posargs:
        session.run("ruff", "check", "--fix", *SOURCES)
        session.run("ruff", "format", *SOURCES)
        return
    session.run("ruff", "check", *SOURCES)
    session.run("ruff", "format", "--check", *SOURCES)


@nox.session
def typecheck(session: nox.Session) -> None:
    """Type-check the package with the optional VLC binding installed."""
    session.install("mypy")
    session.install("-e", ".[vlc]")
    session.run("mypy", "src")


@nox.session
def tests(session: nox.Session) -> None:
    """Run the pytest suite against an editable install."""
    session.install("-e", ".[test]")
    session.run("pytest", *session.posargs)
