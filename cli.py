#!/usr/bin/env python3
import argparse
import sys

from starcc.orchestrator import run_once
from starcc.stages.terminate import find_cluster, format_cluster, iter_clusters
from starcc.stages.translate import TRANSLATORS, translate


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Connected components by Large-Star/Small-Star contraction")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Compute the clusters of a graph")
    run.add_argument("input", help="Adjacency list or clique list, one record per line")
    run.add_argument("output", help="Directory that receives one cluster file per component")
    run.add_argument("--config", help="Path to YAML config")
    run.add_argument("--format", dest="input_format", choices=["auto", "adjacency", "clique"], help="Input format (default: auto-detect)")
    run.add_argument("--workers", dest="num_workers", type=int, help="Reduce partitions / worker threads")
    run.add_argument("--map-tasks", dest="num_map_tasks", type=int, help="Input splits")
    run.add_argument("--retries", dest="retries", type=int, help="Extra attempts per failed job")
    run.add_argument("--max-rounds", dest="max_rounds", type=int, help="Round cap (even, single-mode rounds)")
    run.add_argument("--combiner", dest="combiner", action="store_true", help="Enable map-side dedup")
    run.add_argument("--no-combiner", dest="combiner", action="store_false", help="Disable map-side dedup")
    run.add_argument("--memory-watermark", dest="memory_watermark", type=float, help="Combiner clear threshold (0-1]")
    run.add_argument("--work-dir", dest="work_dir", help="Directory for intermediate rounds")
    run.add_argument("--renumber", dest="renumber", action="store_true", help="Rename clusters to cluster_0..N-1")
    run.add_argument("--no-renumber", dest="renumber", action="store_false", help="Keep cluster_<representative> names")
    run.set_defaults(combiner=None, renumber=None)

    tr = sub.add_parser("translate", help="Convert record sets between binary and text")
    tr.add_argument("kind", choices=sorted(TRANSLATORS))
    tr.add_argument("input")
    tr.add_argument("output")

    show = sub.add_parser("show", help="Print clusters of an output directory")
    show.add_argument("clusters", help="Output directory of a run")
    show.add_argument("--node", type=int, help="Only print the cluster holding this node")
    return parser


def _run(args) -> int:
    overrides = {
        "input_format": args.input_format,
        "num_workers": args.num_workers,
        "num_map_tasks": args.num_map_tasks,
        "retries": args.retries,
        "max_rounds": args.max_rounds,
        "combiner": args.combiner,
        "memory_watermark": args.memory_watermark,
        "work_dir": args.work_dir,
        "renumber": args.renumber,
    }
    try:
        stats = run_once(args.input, args.output, config_path=args.config, overrides=overrides)
    except Exception:
        # already logged by the orchestrator
        return 1
    return 0 if stats.success else 1


def _show(args) -> int:
    if args.node is not None:
        members = find_cluster(args.clusters, args.node)
        if members is None:
            print(f"node {args.node} not found", file=sys.stderr)
            return 1
        print(format_cluster(members[0], members))
        return 0
    for i, members in enumerate(iter_clusters(args.clusters)):
        print(format_cluster(i, members))
    return 0


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "run":
        return _run(args)
    if args.command == "translate":
        translate(args.kind, args.input, args.output)
        return 0
    return _show(args)


if __name__ == "__main__":
    sys.exit(main())
