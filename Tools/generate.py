import sys
import random


def generate_blocks(num_blocks: int, extra_edges: int = None, dead_blocks: int = 0, seed: int = None) -> list:
    """
    Generates a block listing as [(live, successors), ...] indexed by block.

    Guarantees:
      - block 0 is live and every block is on the backbone chain 0 -> 1 -> ... -> N-1
      - at most `dead_blocks` blocks (never block 0) are marked dead
      - extra edges may be back edges or self loops (loops are what prime paths are about)
      - no duplicate edges
    """

    rng = random.Random(seed)

    if extra_edges is None:
        extra_edges = num_blocks

    # --------------------------------------------------
    # 1) Backbone chain
    # --------------------------------------------------
    edges = set()
    for i in range(num_blocks - 1):
        edges.add((i, i + 1))

    # --------------------------------------------------
    # 2) Add extra random edges (back edges and self loops allowed)
    # --------------------------------------------------
    max_attempts = extra_edges * 20
    attempts = 0

    while len(edges) < (num_blocks - 1) + extra_edges and attempts < max_attempts:
        attempts += 1
        u = rng.randrange(num_blocks)
        v = rng.randrange(num_blocks)
        edges.add((u, v))           # set prevents duplicates automatically

    # --------------------------------------------------
    # 3) Mark some blocks dead
    # --------------------------------------------------
    candidates = list(range(1, num_blocks))
    dead = set(rng.sample(candidates, min(dead_blocks, len(candidates))))

    blocks = []
    for i in range(num_blocks):
        succs = sorted(v for (u, v) in edges if u == i)
        blocks.append((i not in dead, succs))
    return blocks


def write_unit_file(units: dict, file_name: str) -> None:
    """Write {unit_name: blocks} in the FUNC / block listing format."""
    with open(file_name, "w", newline="\n") as f:
        for name, blocks in units.items():
            f.write(f"FUNC {name}\n")
            for index, (live, succs) in enumerate(blocks):
                status = "live" if live else "dead"
                f.write(" ".join([str(index), status] + [str(s) for s in succs]) + "\n")


if __name__ == "__main__":
    # Usage:
    #   python generate.py <num_blocks> <file_name> [extra_edges] [seed] [dead_blocks]

    if len(sys.argv) not in (3, 4, 5, 6):
        print("Usage: python generate.py <num_blocks> <file_name> [extra_edges] [seed] [dead_blocks]")
        sys.exit(1)

    try:
        num_blocks = int(sys.argv[1])
    except ValueError:
        print("Error: <num_blocks> must be a positive whole number.")
        sys.exit(1)

    file_name = sys.argv[2]

    if num_blocks < 1:
        print("Error: Number of blocks must be at least 1.")
        sys.exit(1)

    extra_edges = None
    seed = None
    dead_blocks = 0

    if len(sys.argv) >= 4:
        try:
            extra_edges = int(sys.argv[3])
            if extra_edges < 0:
                raise ValueError
        except ValueError:
            print("Error: [extra_edges] must be a non-negative whole number.")
            sys.exit(1)

    if len(sys.argv) >= 5:
        try:
            seed = int(sys.argv[4])
        except ValueError:
            print("Error: [seed] must be a whole number.")
            sys.exit(1)

    if len(sys.argv) == 6:
        try:
            dead_blocks = int(sys.argv[5])
            if dead_blocks < 0:
                raise ValueError
        except ValueError:
            print("Error: [dead_blocks] must be a non-negative whole number.")
            sys.exit(1)

    blocks = generate_blocks(num_blocks, extra_edges, dead_blocks, seed)
    write_unit_file({"generated": blocks}, file_name)
