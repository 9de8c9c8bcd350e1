from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from references import KeyMap, invert_key_map, read_cte_complementar, read_cte_nfes

# ---------------------------------------------------------------------------
# Complementary CT-e closure
# ---------------------------------------------------------------------------


def close_complementary(mapping: KeyMap) -> KeyMap:
    """Turn every connected group of complementary CT-es into a clique.

    If A references B and B references C, all three belong to the same
    group and the result lists, for each member, every other member:
    A -> {B, C}, B -> {A, C}, C -> {A, B}. Isolated keys are dropped since a
    CT-e is never complementary to itself. The input map is left untouched.
    """
    adj: KeyMap = {}
    for u, neighbours in mapping.items():
        for v in neighbours:
            adj.setdefault(u, set()).add(v)
            adj.setdefault(v, set()).add(u)

    closed: KeyMap = {}
    visited: Set[str] = set()
    for node in adj:
        if node in visited:
            continue
        group: List[str] = []
        stack = [node]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            group.append(current)
            stack.extend(n for n in adj.get(current, ()) if n not in visited)

        members = set(group)
        for member in group:
            others = members - {member}
            if others:
                closed[member] = others
    return closed


def propagate_cargo_notes(cte_nfes: KeyMap, closed_complementar: KeyMap) -> KeyMap:
    """Copy the NF-es of each CT-e to all of its complementary CT-es.

    Expects the closed complementary map, so membership is already transitive.
    """
    updates: KeyMap = {}
    for cte, nfes in cte_nfes.items():
        for comp in closed_complementar.get(cte, ()):
            updates.setdefault(comp, set()).update(nfes)

    result: KeyMap = {cte: set(nfes) for cte, nfes in cte_nfes.items()}
    for cte, nfes in updates.items():
        result.setdefault(cte, set()).update(nfes)
    return result


# ---------------------------------------------------------------------------
# Key context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyContext:
    cte_nfes: KeyMap = field(default_factory=dict)
    cte_complementar: KeyMap = field(default_factory=dict)
    nfe_ctes: KeyMap = field(default_factory=dict)

    def related(self, chave: str) -> Set[str]:
        found: Set[str] = set()
        for mapping in (self.nfe_ctes, self.cte_nfes, self.cte_complementar):
            found.update(mapping.get(chave, ()))
        return found

    def stats(self) -> Dict[str, int]:
        return {
            "ctes_com_nfes": len(self.cte_nfes),
            "ctes_complementares": len(self.cte_complementar),
            "nfes_transportadas": len(self.nfe_ctes),
        }


def expand_context(cte_nfes: KeyMap, cte_complementar: KeyMap) -> KeyContext:
    closed = close_complementary(cte_complementar)
    propagated = propagate_cargo_notes(cte_nfes, closed)
    return KeyContext(
        cte_nfes=propagated,
        cte_complementar=closed,
        nfe_ctes=invert_key_map(propagated),
    )


def build_key_context(
    cte_nfes_path: Optional[Path],
    complementar_path: Optional[Path],
    *,
    workers: Optional[int] = None,
    encoding: str = "utf-8",
) -> KeyContext:
    cte_nfes: KeyMap = {}
    complementar: KeyMap = {}
    if cte_nfes_path is not None:
        cte_nfes = read_cte_nfes(cte_nfes_path, workers=workers, encoding=encoding)
    if complementar_path is not None:
        complementar = read_cte_complementar(complementar_path, workers=workers, encoding=encoding)
    return expand_context(cte_nfes, complementar)
