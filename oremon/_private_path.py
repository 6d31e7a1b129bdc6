"""Path that renders the user's home directory as ``~`` when printed."""

from __future__ import annotations

import os
import pathlib


class PrivatePath(pathlib.Path):
    """A `pathlib.Path` whose string form hides the home directory.

    Examples
    --------
    >>> from pathlib import Path
    >>> str(PrivatePath(Path.home() / "mods" / "nucleus-2.1.4.jar"))
    '~/mods/nucleus-2.1.4.jar'
    >>> str(PrivatePath("/srv/mods"))
    '/srv/mods'
    """

    def __str__(self) -> str:
        raw = super().__str__()
        home = str(pathlib.Path.home())
        if raw == home:
            return "~"
        if home != os.sep and raw.startswith(home + os.sep):
            return "~" + raw[len(home) :]
        return raw

    def __fspath__(self) -> str:
        return super().__str__()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"
