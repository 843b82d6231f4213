"""iwmenu - Launcher command templates.

A user supplies one command line for a custom launcher, e.g.::

    fuzzel -d {password_flag:--password} -p '{prompt}' --placeholder '{placeholder}'

Tokens are substituted before the line is split with shlex, so quoting in
the template applies to the substituted text.
"""

import re
import shlex
from dataclasses import dataclass, field
from typing import List, Optional

_PASSWORD_FLAG = re.compile(r'\{password_flag:([^}]+)\}')


@dataclass(frozen=True)
class TemplateContext:
    """Context of one selector invocation."""
    prompt: str = ''
    placeholder: Optional[str] = None
    password: bool = False

    @property
    def placeholder_text(self) -> str:
        return self.prompt if self.placeholder is None else self.placeholder


@dataclass(frozen=True)
class ResolvedCommand:
    command_line: str
    argv: List[str] = field(default_factory=list)


def expand(template: str, ctx: TemplateContext) -> str:
    """Substitute the known tokens of *template*; unknown tokens stay."""
    line = _PASSWORD_FLAG.sub(
        lambda m: m.group(1) if ctx.password else '', template)
    line = line.replace('{prompt}', f'{ctx.prompt}:' if ctx.prompt else '')
    return line.replace('{placeholder}', ctx.placeholder_text)


def resolve(template: str, ctx: TemplateContext) -> ResolvedCommand:
    """Expand *template* and split it into an argv.

    Raises:
        ValueError: If the expanded line has unbalanced quotes.
    """
    line = expand(template, ctx)
    return ResolvedCommand(line, shlex.split(line))
