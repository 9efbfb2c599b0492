"""Stand-in for sdbus++ used by the external CLI tests.

Echoes its arguments so tests can check which artifact was requested.
Exits 3 for the `exception-registry` artifact of an interface named `Broken`.
"""

import sys


def main() -> None:
    args = sys.argv[1:]
    if args[-2:-1] == ["exception-registry"] and args[-1].endswith("Broken"):
        print("registry generation failed", file=sys.stderr)
        raise SystemExit(3)
    print("// generated by fake sdbus++: " + " ".join(args))


if __name__ == "__main__":
    main()
