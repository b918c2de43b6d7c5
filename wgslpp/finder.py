# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains functions related to finding and preprocessing the shader files
below a set of paths.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Generator, Iterable, Mapping
from pathlib import Path
from typing import Any

from tqdm import tqdm

from wgslpp.config import DirectiveAliases
from wgslpp.preprocessor import PreprocessResult, Preprocessor

log = logging.getLogger(__name__)

SHADER_SUFFIXES = [".wgsl"]


def _potential_file_generator(
    paths: Iterable[str | os.PathLike[str]],
) -> Generator[Path, None, None]:
    for path in paths:
        path = Path(path)
        if path.is_dir():
            yield from sorted(path.rglob("*"))
        else:
            yield path


def find(
    paths: Iterable[str | os.PathLike[str]],
    *,
    aliases: DirectiveAliases | Mapping[str, Any] | None = None,
    defines: list[str] | None = None,
    show_progress: bool = False,
) -> dict[Path, PreprocessResult]:
    """
    Preprocess every shader file named in paths, or found below a
    directory in paths.

    Files named explicitly are processed whatever their suffix.
    Aliases and defines are checked before any file is read, and the
    same Preprocessor is used for every file.

    Returns
    -------
    dict[Path, PreprocessResult]
        The result for each file, in the order files were found.

    Raises
    ------
    FileNotFoundError
        If a path does not exist.

    ValueError
        If a predefined macro is malformed, even if no files are found.
    """
    preprocessor = Preprocessor(aliases=aliases, defines=defines)

    paths = list(paths)
    for path in paths:
        if not Path(path).exists():
            raise FileNotFoundError(f"No such file or directory: '{path}'")

    # Identify which files are shader sources.
    filenames: list[Path] = []
    for f in tqdm(
        _potential_file_generator(paths),
        desc="Scanning",
        unit=" files",
        leave=False,
        disable=not show_progress,
    ):
        explicit = f in [Path(p) for p in paths]
        if f.is_file() and (explicit or f.suffix in SHADER_SUFFIXES):
            if f not in filenames:
                filenames.append(f)

    results: dict[Path, PreprocessResult] = {}
    for f in tqdm(
        filenames,
        desc="Preprocessing",
        unit=" file",
        leave=False,
        disable=not show_progress,
    ):
        log.debug(f"Preprocessing {f}")
        with open(f, encoding="utf-8") as source_file:
            source = source_file.read()
        results[f] = preprocessor.process(source)

    return results
