"""Range rewriting: carry a resolved version into the original range syntax."""

import re

_VERSION_IN_RANGE_RE = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+(-.+)?")


def update_range(range_: str, version: str) -> str:
    """
    Replace every full ``X.Y.Z[-pre]`` run in ``range_`` with ``version``.

    Operators and other characters are kept, so ``^1.2.3`` becomes
    ``^2.0.0`` for version ``2.0.0``. A range without a full version (``~6``,
    ``*``) is returned unchanged.
    """
    return _VERSION_IN_RANGE_RE.sub(lambda _match: version, range_)
