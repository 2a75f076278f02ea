"""Client-facing model aliases and their canonical upstream names."""

from typing import Dict, Iterable, List, Mapping, Tuple

# alias -> canonical
MODEL_ALIASES: Dict[str, str] = {
    "claude-opus-4-6[1M]": "claude-opus-4.6-1m",
    "claude-opus-4-6": "claude-opus-4.6-1m",
    "claude-sonnet-4-6": "claude-sonnet-4.6",
    "claude-haiku-4-5": "claude-haiku-4.5",
}


class AliasRegistry:
    """Immutable alias table built once from an alias -> canonical mapping."""

    def __init__(self, aliases: Mapping[str, str]):
        self._canonical_by_alias: Dict[str, str] = dict(aliases)
        reverse: Dict[str, List[str]] = {}
        for alias, canonical in self._canonical_by_alias.items():
            reverse.setdefault(canonical, []).append(alias)
        self._aliases_by_canonical: Dict[str, Tuple[str, ...]] = {
            canonical: tuple(names) for canonical, names in reverse.items()
        }

    def normalize(self, model_id: str) -> str:
        return self._canonical_by_alias.get(model_id, model_id)

    def aliases_of(self, model_id: str) -> Tuple[str, ...]:
        return self._aliases_by_canonical.get(model_id, ())

    def expand_with_aliases(self, model_ids: Iterable[str]) -> List[str]:
        """
        Return each id followed by its aliases, dropping anything already emitted.

        Used to present an upstream catalog where every alias also appears as a model.
        """
        expanded: List[str] = []
        seen = set()
        for model_id in model_ids:
            for variant in (model_id, *self.aliases_of(model_id)):
                if variant in seen:
                    continue
                seen.add(variant)
                expanded.append(variant)
        return expanded


default_registry = AliasRegistry(MODEL_ALIASES)


def normalize_model_name(model_id: str) -> str:
    return default_registry.normalize(model_id)


def get_model_aliases(model_id: str) -> Tuple[str, ...]:
    return default_registry.aliases_of(model_id)


def expand_model_ids_with_aliases(model_ids: Iterable[str]) -> List[str]:
    return default_registry.expand_with_aliases(model_ids)
