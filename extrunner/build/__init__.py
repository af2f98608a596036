"""
Change detection, group planning, reconciliation and reporting for a run.
"""
from .change_detector import ChangeDetector, ManifestDiff
from .group_planner import GroupPlanner, group_key
from .lock import StoreLock
from .manager import ExtensionBuildManager
from .manifest_store import ManifestStore
from .reconciler import ResultReconciler
from .report import BuildReport, SummaryWriter
from .version import VersionAnalyzer, parse_version, version_greater_than

__all__ = [
    'ChangeDetector',
    'ManifestDiff',
    'GroupPlanner',
    'group_key',
    'StoreLock',
    'ExtensionBuildManager',
    'ManifestStore',
    'ResultReconciler',
    'BuildReport',
    'SummaryWriter',
    'VersionAnalyzer',
    'parse_version',
    'version_greater_than',
]
