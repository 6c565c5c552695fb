"""
Order status taxonomy.

Two independent pipelines exist: the custom order flow (uppercase canonical
values) and the standard order flow (title-case legacy labels, plus the newer
uppercase vocabulary mapped onto it through aliases). A status is only ever
classified against the sequence it belongs to.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


COMPLETED = 'completed'
CURRENT = 'current'
UPCOMING = 'upcoming'


@dataclass(frozen=True)
class ProgressStep:
    key: str
    label: str
    state: str

    def to_dict(self) -> Dict[str, str]:
        return {'key': self.key, 'label': self.label, 'state': self.state}


def _fold(value: str) -> str:
    return re.sub(r'[\s\-]+', '_', value.strip()).upper()


class StatusSequence:
    """An ordered status pipeline with aliases and terminal (off-pipeline) values."""

    def __init__(self,
                 name: str,
                 steps: Sequence[str],
                 aliases: Optional[Mapping[str, str]] = None,
                 terminal: Iterable[str] = (),
                 labels: Optional[Mapping[str, str]] = None):
        self.name = name
        self.steps: Tuple[str, ...] = tuple(steps)
        self.labels = dict(labels or {})

        # Case and separator insensitive lookup onto canonical values
        self._lookup: Dict[str, str] = {_fold(step): step for step in self.steps}
        for alias, target in (aliases or {}).items():
            self._lookup[_fold(alias)] = target

        self.terminal = tuple(terminal)
        self._terminal = {_fold(value) for value in self.terminal}

    def normalize(self, status: Optional[str]) -> Optional[str]:
        """Canonical step value, the terminal value as given, or None if unknown."""
        if not status:
            return None
        folded = _fold(str(status))
        if folded in self._lookup:
            return self._lookup[folded]
        if folded in self._terminal:
            return self.terminal[0]
        return None

    def is_terminal(self, status: Optional[str]) -> bool:
        return bool(status) and _fold(str(status)) in self._terminal

    def is_known(self, status: Optional[str]) -> bool:
        return self.normalize(status) is not None

    def index_of(self, status: Optional[str]) -> int:
        """Position in the pipeline; -1 for unknown or terminal values."""
        if self.is_terminal(status):
            return -1
        canonical = self.normalize(status)
        if canonical is None:
            return -1
        return self.steps.index(canonical)

    def label_for(self, step: str) -> str:
        if step in self.labels:
            return self.labels[step]
        return step.replace('_', ' ').title() if step.isupper() else step

    def classify(self, status: Optional[str]) -> List[ProgressStep]:
        """
        Classify every step as completed, current or upcoming for a status.

        Unknown and terminal statuses leave every step upcoming.
        """
        current = self.index_of(status)
        result = []
        for index, step in enumerate(self.steps):
            if current < 0 or index > current:
                state = UPCOMING
            elif index == current:
                state = CURRENT
            else:
                state = COMPLETED
            result.append(ProgressStep(key=step, label=self.label_for(step), state=state))
        return result

    def __repr__(self) -> str:
        return f"StatusSequence({self.name!r}, {len(self.steps)} steps)"


CUSTOM_ORDER_FLOW = StatusSequence(
    name='custom',
    steps=(
        'PENDING_REVIEW',
        'APPROVED',
        'IN_DESIGN',
        'IN_PRINTING',
        'READY_FOR_PICKUP',
        'OUT_FOR_DELIVERY',
        'DELIVERED',
    ),
    aliases={'ACCEPTED': 'APPROVED'},
    terminal=('CANCELLED',),
    labels={
        'PENDING_REVIEW': 'Pending Review',
        'READY_FOR_PICKUP': 'Ready for Pickup',
        'OUT_FOR_DELIVERY': 'Out for Delivery',
    },
)

STANDARD_ORDER_FLOW = StatusSequence(
    name='standard',
    steps=('Pending', 'Accepted', 'In Printing', 'Out for Delivery', 'Delivered'),
    aliases={
        'PENDING': 'Pending',
        'CONFIRMED': 'Accepted',
        'SHIPPED': 'Out for Delivery',
        'COMPLETED': 'Delivered',
        'FULFILLED': 'Delivered',
    },
    terminal=('Cancelled', 'CANCELED'),
)


DELIVERED_STATUSES = ('DELIVERED', 'COMPLETED', 'FULFILLED')

# First match wins
STATUS_TONES = (
    ('danger', re.compile(r'^(CANCELLED|CANCELED|REFUNDED|CANCEL|VOID)')),
    ('success', re.compile(r'^(DELIVERED|COMPLETED|FULFILLED)')),
    ('pickup', re.compile(r'^(READY_FOR_PICKUP)')),
    ('transit', re.compile(r'^(OUT_FOR_DELIVERY|SHIPPED)')),
    ('progress', re.compile(r'^(IN_PROGRESS|IN_PRINTING|PRINTING|IN_DESIGN|DESIGNING)')),
    ('approved', re.compile(r'^(APPROVED|ACCEPTED|CONFIRMED|PAID)')),
    ('pending', re.compile(r'^(PENDING|PENDING_REVIEW|REVIEW)')),
)


def status_tone(status: Optional[str]) -> str:
    """Badge tone for a status from either pipeline."""
    if not status:
        return 'neutral'
    folded = _fold(str(status))
    for tone, pattern in STATUS_TONES:
        if pattern.match(folded):
            return tone
    return 'neutral'


def is_delivered_status(status: Optional[str]) -> bool:
    if not status:
        return False
    return _fold(str(status)) in DELIVERED_STATUSES


def status_label(status: Optional[str]) -> str:
    return status.replace('_', ' ') if status else '—'
