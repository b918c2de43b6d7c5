# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the table mapping each directive to the prefix that introduces it
in source text, and functions to load one from a file.
"""
from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectiveAliases:
    """
    The literal line prefix of each directive.
    Defaults follow the `///#` convention, which keeps directives valid
    comments for tools that do not preprocess.
    """

    define: str = "///#define"
    if_: str = "///#if"
    ifdef: str = "///#ifdef"
    ifndef: str = "///#ifndef"
    elif_: str = "///#elif"
    elifdef: str = "///#elifdef"
    elifndef: str = "///#elifndef"
    else_: str = "///#else"
    endif: str = "///#endif"

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, str):
                raise TypeError(
                    f"Alias for '{_directive(f.name)}' must be a string.",
                )
            if not value or value != value.strip():
                raise ValueError(
                    f"Alias for '{_directive(f.name)}' must be non-empty "
                    + "and contain no surrounding whitespace.",
                )

    @classmethod
    def from_prefix(cls, prefix: str) -> DirectiveAliases:
        """
        Build a table where every directive is prefix followed by its
        name, e.g. from_prefix("#") for C-style directives.
        """
        return cls(
            **{f.name: prefix + _directive(f.name) for f in fields(cls)},
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> DirectiveAliases:
        """
        Build a table from a mapping of directive names (e.g. "if",
        "endif") to prefixes. Directives not named keep their default.

        Raises
        ------
        TypeError
            If `mapping` is not a mapping or a prefix is not a string.
        ValueError
            If `mapping` names an unknown directive.
        """
        if not isinstance(mapping, Mapping):
            raise TypeError("Directive aliases must be a mapping.")

        names = {_directive(f.name): f.name for f in fields(cls)}
        kwargs = {}
        for key, value in mapping.items():
            if key not in names:
                raise ValueError(f"Unknown directive '{key}'.")
            kwargs[names[key]] = value
        return cls(**kwargs)

    def as_dict(self) -> dict[str, str]:
        """
        Returns
        -------
        dict[str, str]
            The table keyed by directive name.
        """
        return {_directive(k): v for k, v in asdict(self).items()}


def _directive(field_name: str) -> str:
    return field_name.rstrip("_")


def load_aliases(path: str | os.PathLike[str]) -> DirectiveAliases:
    """
    Load a table of directive aliases from a JSON file containing a single
    object, e.g. {"define": "#define", "if": "#if"}.
    """
    path = Path(path)
    log.debug(f"Loading directive aliases from {path}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return DirectiveAliases.from_mapping(data)
