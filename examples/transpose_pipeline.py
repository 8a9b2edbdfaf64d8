from __future__ import annotations

import logging
import sys
from pathlib import Path

repo_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(repo_root / "src"))

from tensorgraph import Graph

def build_attention_scores(seq: int = 16, dim: int = 64) -> Graph:
    """q @ k^T where k^T is spelled as an explicit Transpose, plus a redundant pair."""
    g = Graph(name="scores")
    q = g.add_tensor((4, seq, dim))
    k = g.add_tensor((4, seq, dim))

    kt = g.transpose(k, (0, 2, 1))
    q2 = g.transpose(g.transpose(q, (0, 2, 1)), (0, 2, 1))
    s = g.matmul(q2, kt)
    g.relu(s)
    return g

def main() -> None:
    logging.basicConfig(level=logging.INFO)

    print("Building graph...")
    g = build_attention_scores()
    print(f"Original: {len(g.ops)} ops")
    print(g.summary())

    print("\nOptimizing...")
    g.optimize()
    print(f"Optimized: {len(g.ops)} ops")
    print(g.summary())

    print("\nShape inference + memory planning...")
    g.shape_infer()
    g.data_malloc()
    print(g.allocator.format_state())

    print()
    print(g)

if __name__ == "__main__":
    main()
