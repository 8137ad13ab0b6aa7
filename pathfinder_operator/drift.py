"""
Structural comparison of two JSON-like trees

Used to decide whether a live object has drifted from its rendered
definition. The comparison knows nothing about Kubernetes schemas:
callers are expected to feed it representations that leave out
server-populated fields.
"""

from typing import Any, Dict, Iterator, Optional, Tuple, Union


class _Absent:
    """Marker for a key or index that exists on one side only"""

    def __repr__(self) -> str:
        return '<absent>'


ABSENT = _Absent()

PathKey = Union[str, int]


class Diff:
    """
    Tree of differences between an observed and a desired value

    A leaf holds the two differing values. An inner node holds one child
    per differing key (objects) or index (arrays).
    """

    __slots__ = ('observed', 'desired', 'children')

    def __init__(self, observed: Any = ABSENT, desired: Any = ABSENT,
                 children: Optional[Dict[PathKey, 'Diff']] = None):
        self.observed = observed
        self.desired = desired
        self.children = children

    @classmethod
    def leaf(cls, observed: Any, desired: Any) -> 'Diff':
        return cls(observed, desired)

    @classmethod
    def nested(cls, children: Dict[PathKey, 'Diff']) -> 'Diff':
        return cls(children={key: child for key, child in children.items() if child.non_empty()})

    @property
    def is_leaf(self) -> bool:
        return self.children is None

    def non_empty(self) -> bool:
        if self.is_leaf:
            return True
        return any(child.non_empty() for child in self.children.values())

    __bool__ = non_empty

    def paths(self, prefix: str = '') -> Iterator[Tuple[str, Any, Any]]:
        """Yield ``(path, observed, desired)`` for every differing leaf"""
        if self.is_leaf:
            yield prefix or '.', self.observed, self.desired
            return
        for key, child in self.children.items():
            if isinstance(key, int):
                path = f'{prefix}[{key}]'
            else:
                path = f'{prefix}.{key}' if prefix else key
            yield from child.paths(path)

    def __str__(self) -> str:
        return '\n'.join(
            f'{path}: {observed!r} -> {desired!r}'
            for path, observed, desired in self.paths()
        )

    def __repr__(self) -> str:
        return f'Diff({list(self.paths())!r})'


def compare_values(observed: Any, desired: Any) -> Diff:
    """
    Compare two trees of dicts, lists and scalars

    - dict vs dict: union of keys, a key present on one side only is a difference
    - list vs list: element-wise by index, a surplus index is a difference
    - anything else: plain inequality
    """
    if isinstance(observed, dict) and isinstance(desired, dict):
        keys = list(observed)
        keys.extend(key for key in desired if key not in observed)
        return Diff.nested({
            key: compare_values(observed.get(key, ABSENT), desired.get(key, ABSENT))
            for key in keys
        })

    if isinstance(observed, list) and isinstance(desired, list):
        length = max(len(observed), len(desired))
        return Diff.nested({
            index: compare_values(
                observed[index] if index < len(observed) else ABSENT,
                desired[index] if index < len(desired) else ABSENT,
            )
            for index in range(length)
        })

    if observed is ABSENT or desired is ABSENT or observed != desired:
        return Diff.leaf(observed, desired)

    return Diff.nested({})
