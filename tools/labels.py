# Label reconciliation for executions triggered by the flow tool.

from typing import Iterable, List

from bridge.models import Label


def system_labels(labels: Iterable[Label]) -> List[Label]:
    return [label for label in labels if label.is_system()]


def filter_inherited(labels: Iterable[Label], flow_label_keys: set) -> List[Label]:
    """Drop inherited labels whose key is declared by the target flow; system labels are always kept."""
    return [label for label in labels if label.is_system() or label.key not in flow_label_keys]


def overlay(base: Iterable[Label], overrides: Iterable[Label]) -> List[Label]:
    """
    Overlay labels on a base list, de-duplicated by key.

    Overriding labels come first and win on key collision; base labels not
    overridden follow in their original order. Within each list the last label
    with a given key wins.
    """
    result = {label.key: label for label in _dedupe(overrides)}
    for label in _dedupe(base):
        result.setdefault(label.key, label)
    return list(result.values())


def _dedupe(labels: Iterable[Label]) -> List[Label]:
    result: dict = {}
    for label in labels:
        result.pop(label.key, None)
        result[label.key] = label
    return list(result.values())


def effective_labels(
    execution_labels: Iterable[Label],
    flow_label_keys: set,
    inherit: bool,
    predefined: Iterable[Label],
    model_supplied: Iterable[Label],
) -> List[Label]:
    """
    Compute the labels of a new execution.

    Precedence: model-supplied > tool-predefined > inherited (filtered against
    the target flow's own labels) > system labels, which are always kept.
    """
    execution_labels = list(execution_labels)
    base = filter_inherited(execution_labels, flow_label_keys) if inherit else system_labels(execution_labels)
    with_predefined = overlay(base, predefined)
    return overlay(with_predefined, model_supplied)
