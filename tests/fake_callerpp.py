#!/usr/bin/env python3
"""
Stand-in for the callerpp alignment engine used by the tests.

Speaks the same stdin/stdout protocol: queries are buffered until a blank line,
then each is answered with its name, a consensus (the longest input) and an MSA
in which every sequence is padded with trailing gaps. FAKE_CALLERPP_MODE selects
a misbehaviour: truncate, rename, corrupt, hang, badbytes (invalid UTF-8 on
stderr) or badname (invalid UTF-8 in the result name). FAKE_CALLERPP_ARGS names a
file that receives the command-line arguments, one per line.
"""

import os
import sys
import time


def align(name, sequences):
    consensus = max(sequences, key=len)
    width = len(consensus)
    rows = [seq.ljust(width, "-") for seq in sequences]
    rows.append(consensus.ljust(width, "-"))
    return name, consensus, rows


def answer(queries, mode):
    for name, sequences in queries:
        name, consensus, rows = align(name, sequences)
        if mode == "hang":
            time.sleep(3600)
        if mode == "rename":
            name = name + "_other"
        if mode == "corrupt":
            rows[0] = "X" + rows[0][1:]
        if mode == "badname":
            sys.stdout.flush()
            sys.stdout.buffer.write(b">" + name.encode() + b"\xff\n")
            sys.stdout.buffer.flush()
            sys.stdout.write(f"{consensus}\n")
        else:
            sys.stdout.write(f">{name}\n{consensus}\n")
        if mode == "truncate":
            sys.stdout.flush()
            sys.exit(0)
        for row in rows:
            sys.stdout.write(row + "\n")
    sys.stdout.flush()


def main():
    mode = os.environ.get("FAKE_CALLERPP_MODE", "ok")
    args_file = os.environ.get("FAKE_CALLERPP_ARGS")
    if args_file:
        with open(args_file, "w") as f:
            f.write("\n".join(sys.argv[1:]) + "\n")

    sys.stderr.write(f"fake_callerpp started in {mode} mode\n")
    sys.stderr.flush()
    if mode == "badbytes":
        sys.stderr.buffer.write(b"bad \xff byte\n")
        sys.stderr.buffer.write(b"second line\n")
        sys.stderr.buffer.flush()

    queries = []
    while True:
        line = sys.stdin.readline()
        if not line:
            break
        line = line.rstrip("\n")
        if line.startswith(">"):
            queries.append((line[1:], []))
        elif line:
            queries[-1][1].append(line)
        else:
            answer(queries, mode)
            queries = []


if __name__ == "__main__":
    main()
