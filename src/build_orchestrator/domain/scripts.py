from __future__ import annotations
"""Build script templating.

Scripts are configured as template strings. Placeholders use `string.Template`
syntax and are substituted per branch:

- `${project}`: project path segment
- `${branch}`: branch being built
- `${url}`: project remote URL
- `${artifacts}`: configured artifact sub-path

Unknown placeholders are left untouched. The rendered line is split on
whitespace; no shell is involved unless the project opts into `shell`.
"""

from string import Template

from .entities import ProjectSpec


SHELL_EXECUTABLE = "/bin/sh"


def script_variables(project: ProjectSpec, branch: str) -> dict[str, str]:
    return {
        "project": project.path,
        "branch": branch,
        "url": project.url,
        "artifacts": project.artifacts,
    }


def render_script(template: str, project: ProjectSpec, branch: str) -> str:
    return Template(template).safe_substitute(script_variables(project, branch))


def tokenize(command_line: str, *, shell: bool = False) -> list[str]:
    """Turn a rendered command line into an argv list.

    Raises:
        ValueError: When the command line is blank.
    """
    if not command_line.strip():
        raise ValueError("Script command line is empty")
    if shell:
        return [SHELL_EXECUTABLE, "-c", command_line]
    return command_line.split()
