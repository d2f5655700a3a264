#!/usr/bin/env python3
"""
probembed CLI - probability-based and distance-based embeddings

Command-line interface for listing methods, checking analytic gradients
against finite differences, and embedding a data file.

Usage:
    probembed info                              List available methods
    probembed check                             Gradient check, every method
    probembed check --method tsne --plugin      Gradient check, generic chain rule
    probembed embed data.csv --method tsne      Embed a CSV file
"""
import argparse
import logging
import sys

import jax
import jax.numpy as jnp
import numpy as np

jax.config.update("jax_enable_x64", True)


def _load(path, delimiter):
    xm = np.loadtxt(path, delimiter=delimiter, ndmin=2)
    return jnp.asarray(xm, dtype=jnp.float64)


def _synthetic(n, dim, seed):
    key = jax.random.PRNGKey(seed)
    k1, k2 = jax.random.split(key)
    centers = 3.0 * jax.random.normal(k1, (3, dim))
    labels = jnp.arange(n) % 3
    return centers[labels] + jax.random.normal(k2, (n, dim))


def _input_init(method, perplexity):
    from probembed import CostType, PerplexityInit
    if method.cost.cost_type == CostType.DISTANCE:
        return None
    return PerplexityInit(perplexity)


def cmd_info(args):
    """List the named methods and their configuration."""
    from probembed import METHODS, __version__

    print(f"\nprobembed {__version__}\n")
    print(f"{'name':<8} {'method':<8} {'cost':<22} {'kernel':<24} {'P':<12} gradient")
    print("-" * 86)
    for key, factory in METHODS.items():
        method = factory()
        kernel = type(method.kernel).__name__ if method.kernel is not None else "-"
        prob = method.prob_type.value if method.prob_type is not None else "-"
        print(f"{key:<8} {method.name:<8} {method.cost.name:<22} {kernel:<24} "
              f"{prob:<12} {method.stiffness.value}")
    print("\nAny other combination: probembed.embedder(cost, kernel, transform, prob_type)")


def cmd_check(args):
    """Compare analytic gradients with central finite differences."""
    from probembed import (
        METHODS, cost_and_gradient, finite_difference_gradient,
        get_method, init_embedding, pluginize,
    )

    if args.file is not None:
        xm = _load(args.file, args.delimiter)
    else:
        xm = _synthetic(args.n, args.dim, args.seed)
    n = xm.shape[0]
    perplexity = min(args.perplexity, (n - 1) / 3.0)
    names = [args.method] if args.method else list(METHODS)

    print(f"\n=== Gradient check: {n} points, perplexity {perplexity:g} ===\n")
    failed = 0
    for name in names:
        method = get_method(name)
        if args.plugin:
            method = pluginize(method)
        inp, out, method = init_embedding(
            method, xm=xm, input_init=_input_init(method, perplexity)
        )
        _, analytic, out = cost_and_gradient(out.ym, inp, out, method)
        numeric = finite_difference_gradient(inp, out, method, diff=args.step)
        err = float(jnp.mean(jnp.abs(analytic - numeric)))
        ok = err < args.tol
        failed += not ok
        mark = "✓" if ok else "✗"
        print(f"  {mark} {name:<8} {method.stiffness.value:<12} mean |error| = {err:.3e}")

    print()
    if failed:
        print(f"{failed} of {len(names)} methods exceeded tolerance {args.tol:g}")
        return 1
    print(f"✓ All {len(names)} gradients agree within {args.tol:g}")
    return 0


def cmd_embed(args):
    """Embed a data file and write the coordinates."""
    from probembed import GradientDescent, embed, get_method, make_preprocess

    preprocess = make_preprocess(range_scale_matrix=args.range_scale)
    xm, _ = preprocess(_load(args.file, args.delimiter))
    method = get_method(args.method)
    optimizer = GradientDescent(learning_rate=args.learning_rate,
                                momentum=args.momentum, adaptive=True)

    result = embed(
        xm, method, ndim=args.ndim,
        input_init=_input_init(method, args.perplexity),
        optimizer=optimizer, max_iter=args.iters,
    )
    print(f"{method.name}: cost {result.cost:.6g} after {result.n_iter} iterations")

    if args.output:
        np.savetxt(args.output, np.asarray(result.ym), delimiter=args.delimiter)
        print(f"Coordinates written to {args.output}")
    else:
        np.savetxt(sys.stdout, np.asarray(result.ym), delimiter=args.delimiter)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='probembed',
        description='probembed - SNE-family and distance-based embeddings',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  probembed info                          List methods
  probembed check                         Check every analytic gradient
  probembed check --method jse --plugin   Check the generic gradient of JSE
  probembed embed iris.csv --method tsne --perplexity 30 --iters 500
"""
    )
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log progress to stderr')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # info command
    subparsers.add_parser('info', help='List available methods')

    # check command
    check_parser = subparsers.add_parser('check', help='Finite-difference gradient check')
    check_parser.add_argument('--method', help='Method name (default: all)')
    check_parser.add_argument('--plugin', action='store_true',
                              help='Use the generic chain-rule gradient')
    check_parser.add_argument('--file', help='CSV file of coordinates (default: synthetic)')
    check_parser.add_argument('--delimiter', default=',')
    check_parser.add_argument('--n', type=int, default=30, help='Synthetic points')
    check_parser.add_argument('--dim', type=int, default=5, help='Synthetic dimensions')
    check_parser.add_argument('--seed', type=int, default=0)
    check_parser.add_argument('--perplexity', type=float, default=10.0)
    check_parser.add_argument('--step', type=float, default=1e-4)
    check_parser.add_argument('--tol', type=float, default=1e-4)

    # embed command
    embed_parser = subparsers.add_parser('embed', help='Embed a CSV file')
    embed_parser.add_argument('file', help='CSV file of coordinates, one row per point')
    embed_parser.add_argument('--method', default='tsne')
    embed_parser.add_argument('--perplexity', type=float, default=30.0)
    embed_parser.add_argument('--iters', type=int, default=1000)
    embed_parser.add_argument('--ndim', type=int, default=2)
    embed_parser.add_argument('--learning-rate', type=float, default=1.0)
    embed_parser.add_argument('--momentum', type=float, default=0.5)
    embed_parser.add_argument('--range-scale', action='store_true',
                              help='Range scale the whole matrix to [0, 1] first')
    embed_parser.add_argument('--delimiter', default=',')
    embed_parser.add_argument('-o', '--output', help='Output file (default: stdout)')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO,
                            format='%(asctime)s %(name)s %(levelname)s %(message)s')

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == 'info':
        cmd_info(args)
    elif args.command == 'check':
        return cmd_check(args)
    elif args.command == 'embed':
        return cmd_embed(args)

    return 0


if __name__ == '__main__':
    sys.exit(main())
