from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

# A statement is a line of text, a structured record or a callable run with the engine.
Statement = Union[str, Mapping[str, Any], Callable[..., Any]]


def is_callback(statement: Any) -> bool:
    return callable(statement) and not isinstance(statement, (str, Mapping))


class Script:
    """Labeled statement sequences.

    In multi-language mode the top level is keyed by language and every
    lookup takes the language to read from.
    """

    def __init__(self, labels: Optional[Mapping[str, Any]] = None, multi_language: bool = False) -> None:
        self.multi_language = multi_language
        self._labels: Dict[str, Any] = {}
        if labels:
            self.update(labels)

    def update(self, labels: Mapping[str, Any]) -> None:
        """Merge labels (or languages of labels) into the script."""
        if self.multi_language:
            for language, table in labels.items():
                bucket = self._labels.setdefault(language, {})
                for name, statements in table.items():
                    bucket[name] = tuple(statements)
        else:
            for name, statements in labels.items():
                self._labels[name] = tuple(statements)

    def set_label(self, name: str, statements: Iterable[Statement], language: Optional[str] = None) -> None:
        if self.multi_language:
            if language is None:
                raise ValueError("multi-language scripts need a language for set_label")
            self._labels.setdefault(language, {})[name] = tuple(statements)
        else:
            self._labels[name] = tuple(statements)

    def _table(self, language: Optional[str]) -> Dict[str, Tuple[Statement, ...]]:
        if self.multi_language:
            return self._labels.get(language or "", {})
        return self._labels

    def label(self, name: str, language: Optional[str] = None) -> Optional[Tuple[Statement, ...]]:
        return self._table(language).get(name)

    def has_label(self, name: str, language: Optional[str] = None) -> bool:
        return name in self._table(language)

    def labels(self, language: Optional[str] = None) -> List[str]:
        return list(self._table(language).keys())

    def languages(self) -> List[str]:
        return list(self._labels.keys()) if self.multi_language else []

    def statement(self, name: str, step: int, language: Optional[str] = None) -> Optional[Statement]:
        """Statement at (label, step); None at end-of-label or for unknown labels."""
        seq = self.label(name, language)
        if seq is None or step < 0 or step >= len(seq):
            return None
        return seq[step]

    def __len__(self) -> int:
        return sum(len(self._table(lang)) for lang in self.languages()) if self.multi_language else len(self._labels)

    def iter_statements(self, language: Optional[str] = None) -> Iterable[Tuple[str, int, Statement]]:
        for name, seq in self._table(language).items():
            for step, statement in enumerate(seq):
                yield name, step, statement
