"""Render authorized_keys files and the password database from resolved state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from scripts.keysync.config import TEMPLATE_SUFFIX, OutputConfig
from scripts.keysync.errors import TemplateRenderError
from scripts.keysync.models import Application, ResolvedState

logger = logging.getLogger("keysync.synthesizer")


@dataclass
class SynthesisReport:
    written: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    password_file: Optional[str] = None

    def counts(self) -> dict[str, int]:
        return {
            "written": len(self.written),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


def authorized_key_lines(app: Application, state: ResolvedState) -> list[str]:
    """One line per collaborator key, each pinned to the app's container."""
    prefix = f'environment="CONNECTION_STRING={app.connection_string}"   '
    return [
        prefix + key
        for collaborator in app.collaborators
        for key in state.keys_for(collaborator.login)
    ]


class ArtifactSynthesizer:
    def __init__(self, output: OutputConfig) -> None:
        self.output = output
        self._env = Environment(
            loader=FileSystemLoader(str(output.template_path)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def synthesize(self, state: ResolvedState) -> SynthesisReport:
        """Write every key file, then the password file.

        Raises TemplateRenderError if the password file cannot be rendered;
        key files written before that are left in place.
        """
        report = SynthesisReport()
        for app in state.applications.values():
            self._write_application(app, state, report)
        report.password_file = self._write_password_file(state)
        return report

    def _write_application(
        self, app: Application, state: ResolvedState, report: SynthesisReport
    ) -> None:
        lines = authorized_key_lines(app, state)
        targets = [app.login] + [c for c in app.containers if c != app.login]
        paths = [Path(self.output.keys_path) / name for name in targets]

        if not lines:
            # Never truncate an existing authorized_keys file to empty.
            for path in paths:
                logger.error(
                    "No keys returned [%s] not updated.", path,
                    extra={"login": app.login, "path": str(path)},
                )
                report.skipped.append(str(path))
            return

        content = "\n".join(lines) + "\n"
        for path in paths:
            try:
                path.write_text(content, encoding="utf-8")
            except OSError as exc:
                logger.error(
                    "Failed to write SSH key file: %s", exc,
                    extra={"login": app.login, "path": str(path)},
                )
                report.failed.append(str(path))
                continue
            logger.debug(
                "Wrote SSH key file for [%s] at [%s]", app.login, path,
                extra={"login": app.login, "path": str(path), "count": len(lines)},
            )
            report.written.append(str(path))

    def render_password_file(self, state: ResolvedState) -> str:
        name = f"{self.output.password_template}{TEMPLATE_SUFFIX}"
        try:
            template = self._env.get_template(name)
            return template.render(
                applications=[app.to_template() for app in state.applications.values()]
            )
        except TemplateError as exc:
            raise TemplateRenderError(
                f"Cannot render password template [{name}] from "
                f"[{self.output.template_path}]: {exc}"
            ) from exc

    def _write_password_file(self, state: ResolvedState) -> Optional[str]:
        rendered = self.render_password_file(state)
        path = Path(self.output.password_file)
        try:
            path.write_text(rendered, encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to write password file: %s", exc, extra={"path": str(path)})
            return None
        logger.info(
            "Updated [%s] file with [%d] applications.", path, len(state.applications),
            extra={"path": str(path), "count": len(state.applications)},
        )
        return str(path)
