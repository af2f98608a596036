"""
Version checks for freshly built extensions.

Version discipline is advisory: every finding here is a warning.
"""
import re
from typing import List, Optional, Tuple

from ..core.enums import ChangeType, WarningType
from ..core.models import ExtensionChange, ExtensionWarning
from ..core.schemas import ExtensionState, PackageManifest

ParsedVersion = Tuple[int, int, int]

VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def parse_version(version: Optional[str]) -> Optional[ParsedVersion]:
    """Parse 'major.minor.patch'; anything else is irregular and gives None"""
    if version is None:
        return None
    match = VERSION_PATTERN.fullmatch(version)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def version_greater_than(new: ParsedVersion, old: ParsedVersion) -> bool:
    return new > old


class VersionAnalyzer:
    """Emits warnings about a built package's manifest"""

    def __init__(self, api_level: int):
        self.api_level = api_level

    def analyze(
        self,
        ext: str,
        change: ExtensionChange,
        manifest: PackageManifest,
        old_state: Optional[ExtensionState]
    ) -> List[ExtensionWarning]:
        """
        Check a package manifest against the expected ID, API level and the
        previously built version. Warnings are added to the change and
        returned.
        """
        warnings: List[ExtensionWarning] = []

        if manifest.api_level != self.api_level:
            # Missing or mismatched API level, the client won't load it
            warnings.append(ExtensionWarning(type=WarningType.INVALID_API_LEVEL, value=manifest.api_level))

        if manifest.id != ext:
            warnings.append(ExtensionWarning(type=WarningType.INVALID_ID, value=manifest.id))

        new_version = manifest.version
        old_version = old_state.version if old_state is not None else None

        if new_version is not None and old_version is not None and new_version == old_version:
            warnings.append(ExtensionWarning(
                type=WarningType.SAME_OR_LOWER_VERSION,
                old_version=old_version,
                new_version=new_version,
            ))

        parsed = parse_version(new_version)
        if parsed is None:
            # Unparseable or missing (value None) version
            warnings.append(ExtensionWarning(type=WarningType.IRREGULAR_VERSION, value=new_version))
        elif change.type == ChangeType.UPDATE and old_version is not None:
            old_parsed = parse_version(old_version)
            if old_parsed is not None and not version_greater_than(parsed, old_parsed):
                warnings.append(ExtensionWarning(
                    type=WarningType.SAME_OR_LOWER_VERSION,
                    old_version=old_version,
                    new_version=new_version,
                ))

        unique: List[ExtensionWarning] = []
        for warning in warnings:
            if warning not in unique:
                unique.append(warning)
                change.add_warning(warning)
        return unique
