from __future__ import annotations

from .aggregate import Aggregator, AggregatorState
from .errors import CorruptHistoryError, HarvestError, MalformedCommitError, RepositoryAccessError
from .extract import extract_record
from .harvest import HarvestResult, harvest
from .history import CancellationToken, HistoryCursor, read_history
from .models import Commit, FileChange, NormalizedRecord, SummarySnapshot, TraversalConfig, TraversalOrder

__version__ = "0.3.0"
