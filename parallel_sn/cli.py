"""
CLI entry point for the finite element discrete-ordinates solver.

Usage:
    parallel-sn problem.json                         # Run the problem in problem.json
    parallel-sn problem.json --workers 4             # Assemble on 4 worker processes
    parallel-sn problem.json -o results.json         # Write results as JSON
    parallel-sn problem.json --plot figures          # Save PNG figures
    parallel-sn --list-backends                      # Show available backends
    parallel-sn --validate                           # Infinite-medium self-check
"""
import argparse
import json
import os
import sys


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='parallel-sn',
        description='Parallel finite element S_N transport (k-eigenvalue and fixed source)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  parallel-sn slab.json                     Run with the settings in slab.json
  parallel-sn slab.json --workers 4         Parallel assembly on 4 processes
  parallel-sn slab.json --nda               Enable NDA acceleration
  parallel-sn --list-backends               Show available backends
  parallel-sn --validate                    Compare with analytic k_inf
        """,
    )

    parser.add_argument('input', nargs='?', default=None, help='Problem definition (JSON)')
    parser.add_argument('--workers', '-w', type=int, default=None,
                        help='Worker processes for assembly (default: from input, else 1)')
    parser.add_argument('--model', choices=['saaf', 'ep'], default=None,
                        help='Override the transport model')
    parser.add_argument('--nda', action='store_true', help='Enable NDA acceleration')
    parser.add_argument('--output', '-o', type=str, default=None, help='Output JSON file')
    parser.add_argument('--list-backends', action='store_true', help='List available backends')
    parser.add_argument('--validate', action='store_true',
                        help='Run the infinite-medium validation suite')
    parser.add_argument('--plot', type=str, default=None, metavar='DIR',
                        help='Write result figures (PNG) into DIR (needs matplotlib)')
    parser.add_argument('--quiet', '-q', action='store_true', help='Minimal output')

    args = parser.parse_args(argv)

    # List backends
    if args.list_backends:
        from .backends import list_backends
        print("Available backends:")
        print(f"  {'Name':<10} {'Description':<40} {'Available'}")
        print(f"  {'-'*10} {'-'*40} {'-'*9}")
        for name, desc, avail in list_backends():
            status = "YES" if avail else "NO"
            print(f"  {name:<10} {desc:<40} {status}")
        return 0

    # Validate mode
    if args.validate:
        from .validation.analytic import run_validation
        return run_validation(n_workers=args.workers or 1, output_path=args.output)

    if args.input is None:
        parser.error("an input file is required (or use --list-backends / --validate)")

    from .config import ProblemConfig
    from .errors import TransportError
    from .problem import TransportProblem

    try:
        config = ProblemConfig.from_json(args.input)
        if args.workers is not None:
            config.n_workers = args.workers
        if args.model is not None:
            config.transport_model = args.model
        if args.nda:
            config.nda = True

        with TransportProblem(config, verbose=not args.quiet) as problem:
            result = problem.run()
    except TransportError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if args.quiet and config.eigen:
        print(f"k_eff = {result.keff:.8f}")

    # Save output
    if args.output:
        output_path = args.output
        directory = os.path.dirname(os.path.abspath(output_path))
        os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        if not args.quiet:
            print(f"\nResults saved to {output_path}")

    if args.plot:
        from .report import plot_results
        paths = plot_results(result.to_dict(), args.plot)
        if not args.quiet:
            for path in paths:
                print(f"Figure saved to {path}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
