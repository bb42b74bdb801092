"""
Export options.

Options only affect presentation of the generated artifacts (sentinel level
labels, the R loader library, CSV line endings). They never change which
columns exist, so a table and script produced with the same options always
agree.

Options can be read from a small YAML file:

    no_response_label: "No response"
    not_grouped_label: "Not grouped"
    r_library: readr
    csv_line_terminator: "\\n"
"""
from dataclasses import dataclass, fields
from typing import IO, Any, Dict, Union

import yaml

from qtab.errors import ConfigError


@dataclass(frozen=True)
class ExportOptions:
    """
    Presentation settings shared by the CSV and R backends.

    Properties:
        no_response_label: Sentinel level appended to every factor scale
        not_grouped_label: Sentinel level appended to pick-group-rank group scales
        r_library: Package loaded by the script preamble (must provide read_csv)
        csv_line_terminator: Row terminator for the CSV table
    """

    no_response_label: str = "No response"
    not_grouped_label: str = "Not grouped"
    r_library: str = "readr"
    csv_line_terminator: str = "\n"


def options_from_dict(d: Dict[str, Any]) -> ExportOptions:
    known = {f.name for f in fields(ExportOptions)}
    unknown = sorted(set(d) - known)
    if unknown:
        raise ConfigError(f"Unknown option(s): {', '.join(unknown)}")
    for name, value in d.items():
        if not isinstance(value, str):
            raise ConfigError(f"Option '{name}' must be a string, got {type(value).__name__}")
    return ExportOptions(**d)


def load_options(stream: Union[IO[str], IO[bytes], str]) -> ExportOptions:
    """
    Read ExportOptions from a YAML document.

    Args:
        stream: Open text/binary stream, or YAML text

    Returns:
        ExportOptions (defaults for an empty document)

    Raises:
        ConfigError: If the YAML is invalid, not a mapping, or has unknown keys
    """
    try:
        data = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid options file: {e}") from e

    if data is None:
        return ExportOptions()
    if not isinstance(data, dict):
        raise ConfigError("Options file must contain a mapping")
    return options_from_dict(data)


def load_options_file(filepath: str) -> ExportOptions:
    with open(filepath, "r", encoding="utf-8") as f:
        return load_options(f)


__all__ = ["ExportOptions", "load_options", "load_options_file", "options_from_dict"]
