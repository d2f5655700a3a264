"""
Gradient Tests: analytic gradients against central finite differences.

Every method is initialized on the first 50 iris rows (range scaled, PCA
initial coordinates) and its analytic gradient must match the numerical
one to a mean absolute difference of 1e-6. Heavy-tailed kernels use a
larger finite-difference step.

Test Suites:
- Distance-based costs (closed form and distance chain rule)
- SNE family closed forms
- Asymmetric kernels (per-point precisions)
- Plugin chain rule, single and multiscale
- Importance weighting and inhomogeneous kernels
- Un-normalized embedders and their equivalence with MDS
- Agreement between strategies
"""
import pytest
import jax.numpy as jnp

from probembed import (
    ExpKernel,
    JSDivergence,
    KLDivergence,
    MethodSpec,
    MultiscalePerplexityInit,
    NeRVDivergence,
    PerplexityInit,
    PrecisionTransfer,
    ProbType,
    ReverseKLDivergence,
    SquaredError,
    StiffnessStrategy,
    Transform,
    embedder,
    finite_difference_gradient,
    gradient,
    init_embedding,
    pluginize,
)
from probembed.embedding.method import (
    asne, ssne, tsne, tasne, hssne, rasne, rssne, rtsne,
    nerv, snerv, hsnerv, tnerv, jse, sjse, hsjse,
    htsne, itsne, ihssne, ih3sne, ihpsne, wssne,
    mmds, smmds, sammon_map,
)
from probembed.gradient import DEFAULT_STEP


N = 50
BETAS = jnp.linspace(1e-3, 1.0, N)
HEAVY_STEP = 1e-4


def perp(p=20):
    return PerplexityInit(perplexity=p)


def multiscale(transfer=PrecisionTransfer.SCALE_TO_PERPLEXITY):
    return MultiscalePerplexityInit(perplexities=(45.0, 35.0, 25.0), transfer=transfer)


def _embedder(method, xm, ym, input_init):
    return init_embedding(method, xm=xm, input_init=input_init, output_init=ym)


def analytic_and_numeric(method, xm, ym, input_init=None, diff=DEFAULT_STEP):
    inp, out, method = _embedder(method, xm, ym, input_init)
    return gradient(inp, out, method), finite_difference_gradient(inp, out, method, diff)


def assert_grad(method, xm, ym, input_init=None, diff=DEFAULT_STEP, tol=1e-6):
    an, fd = analytic_and_numeric(method, xm, ym, input_init, diff)
    assert an.shape == fd.shape == ym.shape
    err = float(jnp.mean(jnp.abs(an - fd)))
    assert err < tol, f"{method.name}: mean |analytic - numeric| = {err:.3e}"


# =============================================================================
# Distance-Based Costs
# =============================================================================

@pytest.mark.gradient
class TestDistanceGradients:
    """MDS, SSTRESS and Sammon mapping."""

    @pytest.mark.parametrize("factory", [mmds, smmds, sammon_map],
                             ids=["mmds", "smmds", "sammon"])
    def test_closed_form(self, factory, iris50, ym50):
        """Hand-derived distance stiffness matches finite differences."""
        assert_grad(factory(), iris50, ym50)

    @pytest.mark.parametrize("factory", [mmds, smmds, sammon_map],
                             ids=["mmds", "smmds", "sammon"])
    def test_distance_chain_rule(self, factory, iris50, ym50):
        """Generic dC/dD chain rule matches finite differences."""
        assert_grad(pluginize(factory()), iris50, ym50)


# =============================================================================
# SNE Family
# =============================================================================

@pytest.mark.gradient
class TestSNEGradients:
    """Closed-form stiffness of the named methods."""

    @pytest.mark.parametrize("factory", [asne, ssne, tsne, tasne],
                             ids=["asne", "ssne", "tsne", "tasne"])
    def test_sne(self, factory, iris50, ym50):
        assert_grad(factory(), iris50, ym50, perp())

    def test_heavy_tailed(self, iris50, ym50):
        assert_grad(hssne(), iris50, ym50, perp(), diff=HEAVY_STEP)

    @pytest.mark.parametrize("factory", [rasne, rssne, rtsne],
                             ids=["rasne", "rssne", "rtsne"])
    def test_reverse(self, factory, iris50, ym50):
        assert_grad(factory(), iris50, ym50, perp())

    @pytest.mark.parametrize("factory", [nerv, snerv, tnerv],
                             ids=["nerv", "snerv", "tnerv"])
    def test_nerv_fixed_precision(self, factory, iris50, ym50):
        assert_grad(factory(), iris50, ym50, perp())

    def test_heavy_tailed_nerv(self, iris50, ym50):
        assert_grad(hsnerv(beta=1.0), iris50, ym50, perp(), diff=HEAVY_STEP)

    @pytest.mark.parametrize("factory", [jse, sjse], ids=["jse", "sjse"])
    def test_jse(self, factory, iris50, ym50):
        assert_grad(factory(), iris50, ym50, perp())

    def test_heavy_tailed_jse(self, iris50, ym50):
        assert_grad(hsjse(), iris50, ym50, perp(), diff=HEAVY_STEP)

    @pytest.mark.parametrize("kappa", [0.1, 0.9])
    def test_jse_kappa(self, kappa, iris50, ym50):
        """Both ends of the JS interpolation."""
        assert_grad(jse(kappa=kappa), iris50, ym50, perp())


# =============================================================================
# Asymmetric Kernels
# =============================================================================

@pytest.mark.gradient
class TestAsymmetricGradients:
    """Per-point precisions make the kernel asymmetric."""

    @pytest.mark.parametrize("factory", [asne, rasne, nerv, jse],
                             ids=["asne", "rasne", "nerv", "jse"])
    def test_row_probabilities(self, factory, iris50, ym50):
        assert_grad(factory(beta=BETAS), iris50, ym50, perp(45))

    @pytest.mark.parametrize("factory", [ssne, snerv, sjse], ids=["ssne", "snerv", "sjse"])
    def test_enforced_joint(self, factory, iris50, ym50):
        """Averaging an asymmetric kernel needs the conditional correction."""
        assert_grad(factory(beta=BETAS), iris50, ym50, perp(45))

    def test_heavy_tailed_enforced_joint(self, iris50, ym50):
        assert_grad(hsnerv(beta=BETAS), iris50, ym50, perp(45))

    @pytest.mark.parametrize("cost", [NeRVDivergence(), JSDivergence()], ids=["nerv", "js"])
    @pytest.mark.parametrize("prob_type,out_prob_type", [
        (ProbType.JOINT, ProbType.CONDITIONAL),
        (ProbType.JOINT, None),
        (ProbType.CONDITIONAL, None),
    ], ids=["joint-cond", "joint", "cond"])
    def test_probability_types(self, cost, prob_type, out_prob_type, iris50, ym50):
        method = MethodSpec("custom", cost, ExpKernel(BETAS), prob_type,
                            out_prob_type=out_prob_type)
        assert_grad(method, iris50, ym50, perp(45))

    @pytest.mark.parametrize("cost", [NeRVDivergence(), JSDivergence()], ids=["nerv", "js"])
    @pytest.mark.parametrize("prob_type,out_prob_type", [
        (ProbType.JOINT, ProbType.CONDITIONAL),
        (ProbType.JOINT, None),
        (ProbType.CONDITIONAL, None),
    ], ids=["joint-cond", "joint", "cond"])
    def test_probability_types_plugin(self, cost, prob_type, out_prob_type, iris50, ym50):
        method = embedder(cost, ExpKernel(BETAS), prob_type=prob_type,
                          out_prob_type=out_prob_type)
        assert_grad(method, iris50, ym50, perp(45))

    @pytest.mark.parametrize("prob_type,out_prob_type,kernel", [
        (ProbType.ROW, ProbType.JOINT, ExpKernel()),
        (ProbType.ROW, ProbType.CONDITIONAL, ExpKernel()),
        (ProbType.JOINT, ProbType.ROW, ExpKernel()),
        (ProbType.CONDITIONAL, ProbType.JOINT, ExpKernel(BETAS)),
    ], ids=["row-joint", "row-cond", "joint-row", "cond-enforced-joint"])
    def test_mixed_normalization_plugin(self, prob_type, out_prob_type, kernel, iris50, ym50):
        """Input and output normalized differently: only the chain rule applies."""
        method = MethodSpec("mix", KLDivergence(), kernel, prob_type,
                            out_prob_type=out_prob_type,
                            stiffness=StiffnessStrategy.PLUGIN)
        assert_grad(method, iris50, ym50, perp(20))


# =============================================================================
# Plugin Gradients
# =============================================================================

@pytest.mark.gradient
class TestPluginGradients:
    """Generic chain rule through normalization, kernel and transform."""

    @pytest.mark.parametrize("factory", [
        asne, ssne, tsne, tasne, rasne, rssne, rtsne, tnerv, jse, sjse,
    ], ids=lambda f: f.__name__)
    def test_plugin(self, factory, iris50, ym50):
        assert_grad(pluginize(factory()), iris50, ym50, perp())

    @pytest.mark.parametrize("factory", [nerv, snerv], ids=["nerv", "snerv"])
    def test_plugin_nerv(self, factory, iris50, ym50):
        assert_grad(pluginize(factory(beta=1.0)), iris50, ym50, perp())

    @pytest.mark.parametrize("factory", [hssne, hsnerv, hsjse], ids=lambda f: f.__name__)
    def test_plugin_heavy_tailed(self, factory, iris50, ym50):
        assert_grad(pluginize(factory()), iris50, ym50, perp(), diff=HEAVY_STEP)

    @pytest.mark.parametrize("factory", [asne, rasne, ssne, nerv, snerv, jse, sjse],
                             ids=lambda f: f.__name__)
    def test_plugin_asymmetric(self, factory, iris50, ym50):
        assert_grad(pluginize(factory(beta=BETAS)), iris50, ym50, perp(45))


@pytest.mark.gradient
@pytest.mark.slow
class TestMultiscaleGradients:
    """Average of per-scale output probabilities."""

    @pytest.mark.parametrize("method", [
        asne(), ssne(), rasne(), rssne(), nerv(beta=1.0), snerv(beta=1.0),
        nerv(beta=BETAS), snerv(beta=BETAS), jse(), sjse(), hsjse(),
    ], ids=lambda m: m.name + ("-aw" if not m.kernel.is_symmetric else ""))
    def test_scaled_precisions(self, method, iris50, ym50):
        assert_grad(pluginize(method), iris50, ym50, multiscale())

    @pytest.mark.parametrize("method", [
        asne(), ssne(), nerv(beta=BETAS), snerv(beta=BETAS), jse(), sjse(),
    ], ids=lambda m: m.name + ("-aw" if not m.kernel.is_symmetric else ""))
    def test_unmodified_precisions(self, method, iris50, ym50):
        assert_grad(pluginize(method), iris50, ym50, multiscale(PrecisionTransfer.NONE))

    @pytest.mark.parametrize("method", [
        asne(), ssne(), nerv(beta=BETAS), snerv(beta=BETAS), jse(), sjse(),
    ], ids=lambda m: m.name + ("-aw" if not m.kernel.is_symmetric else ""))
    def test_transferred_precisions(self, method, iris50, ym50):
        """Per-point input precisions become per-scale output precisions."""
        assert_grad(pluginize(method), iris50, ym50, multiscale(PrecisionTransfer.TRANSFER))


# =============================================================================
# Importance Weighting And Inhomogeneous Kernels
# =============================================================================

@pytest.mark.gradient
class TestWeightedAndInhomogeneous:

    def test_weighted_ssne(self, iris50, ym50):
        assert_grad(wssne(), iris50, ym50, perp())

    def test_weighted_ssne_plugin(self, iris50, ym50):
        assert_grad(pluginize(wssne()), iris50, ym50, perp())

    @pytest.mark.parametrize("factory", [ihssne, ih3sne, ihpsne], ids=lambda f: f.__name__)
    def test_inhomogeneous_heavy_tailed(self, factory, iris50, ym50):
        """Per-point heavy-tailedness with joint, mixed and conditional types."""
        method = factory(alpha=jnp.linspace(1.0, 5.0, N), beta=BETAS)
        assert_grad(method, iris50, ym50, perp())

    @pytest.mark.parametrize("dof", [0.001, 1.0, 1000.0])
    def test_tunable_dof(self, dof, iris50, ym50):
        assert_grad(htsne(dof=dof), iris50, ym50, perp())

    @pytest.mark.parametrize("lo,hi", [(0.001, 1.0), (1.0, 10.0), (10.0, 1000.0)])
    def test_inhomogeneous_t(self, lo, hi, iris50, ym50):
        assert_grad(itsne(dof=jnp.linspace(lo, hi, N)), iris50, ym50, perp())


# =============================================================================
# Un-normalized Embedders
# =============================================================================

@pytest.mark.gradient
class TestUnnormalizedEmbedders:
    """SquaredError on raw (squared) distances and un-normalized kernels."""

    def test_mmds_embedder(self, iris50, ym50):
        assert_grad(embedder(SquaredError(), transform=Transform.NONE), iris50, ym50)

    def test_smmds_embedder(self, iris50, ym50):
        assert_grad(embedder(SquaredError(), transform=Transform.SQUARED), iris50, ym50)

    @pytest.mark.parametrize("prob_type", [ProbType.ROW, ProbType.JOINT])
    @pytest.mark.parametrize("transform", [Transform.NONE, Transform.SQUARED])
    def test_normalized_distance_embedders(self, prob_type, transform, iris50, ym50):
        assert_grad(embedder(SquaredError(), transform=transform, prob_type=prob_type),
                    iris50, ym50)

    @pytest.mark.parametrize("cost", [
        KLDivergence(), ReverseKLDivergence(), NeRVDivergence(), JSDivergence(),
    ], ids=lambda c: c.name)
    def test_unnormalized_exponential(self, cost, iris50, ym50):
        assert_grad(embedder(cost, ExpKernel()), iris50, ym50, perp())

    def test_kernel_on_raw_distances(self, iris50, ym50):
        """Closed form carries the sqrt chain factor."""
        method = MethodSpec("ASNE-d", KLDivergence(), ExpKernel(), ProbType.ROW,
                            transform=Transform.NONE)
        assert_grad(method, iris50, ym50, perp())


# =============================================================================
# Strategy Agreement
# =============================================================================

@pytest.mark.gradient
class TestStrategyAgreement:
    """Closed form and plugin are two derivations of the same gradient."""

    def _both(self, method, iris50, ym50, input_init):
        inp, out, m1 = _embedder(method, iris50, ym50, input_init)
        g1 = gradient(inp, out, m1)
        inp, out, m2 = _embedder(pluginize(method), iris50, ym50, input_init)
        g2 = gradient(inp, out, m2)
        return g1, g2

    @pytest.mark.parametrize("method", [
        asne(), ssne(), tsne(), rssne(), jse(), sjse(), nerv(), wssne(),
        asne(beta=BETAS), ssne(beta=BETAS), snerv(beta=BETAS), sjse(beta=BETAS),
    ], ids=lambda m: m.name + ("-aw" if not m.kernel.is_symmetric else ""))
    def test_closed_form_equals_plugin(self, method, iris50, ym50):
        g1, g2 = self._both(method, iris50, ym50, perp(45))
        assert jnp.allclose(g1, g2, rtol=1e-6, atol=1e-9)

    def test_mmds_equivalence(self, iris50, ym50):
        """SquaredError, no kernel, raw distances, no normalization is MDS."""
        inp, out, m1 = _embedder(embedder(SquaredError(), transform=Transform.NONE),
                                 iris50, ym50, None)
        g1 = gradient(inp, out, m1)
        c1 = m1.cost.value(inp, out, m1)
        inp, out, m2 = _embedder(mmds(), iris50, ym50, None)
        g2 = gradient(inp, out, m2)
        c2 = m2.cost.value(inp, out, m2)
        assert jnp.allclose(c1, c2)
        assert jnp.allclose(g1, g2, rtol=1e-6, atol=1e-9)

    def test_smmds_equivalence(self, iris50, ym50):
        inp, out, m1 = _embedder(embedder(SquaredError(), transform=Transform.SQUARED),
                                 iris50, ym50, None)
        g1 = gradient(inp, out, m1)
        inp, out, m2 = _embedder(smmds(), iris50, ym50, None)
        g2 = gradient(inp, out, m2)
        assert jnp.allclose(g1, g2, rtol=1e-6, atol=1e-9)

    def test_heavy_tail_limits(self, iris50, ym50):
        """alpha = 0 is SSNE; alpha = 1, beta = 1 is t-SNE."""
        for heavy, plain in [(hssne(alpha=0.0), ssne()), (hssne(alpha=1.0), tsne())]:
            inp, out, m1 = _embedder(heavy, iris50, ym50, perp())
            inp, out2, m2 = _embedder(plain, iris50, ym50, perp())
            assert jnp.allclose(out.qm.data, out2.qm.data, rtol=1e-10)
            assert jnp.allclose(gradient(inp, out, m1), gradient(inp, out2, m2),
                                rtol=1e-6, atol=1e-12)


# =============================================================================
# Degenerate Configurations
# =============================================================================

@pytest.mark.invariant
class TestCoincidentPoints:
    """Explicit pairwise differences keep coincident points finite."""

    @pytest.mark.parametrize("factory", [tsne, ssne, asne, mmds, sammon_map],
                             ids=lambda f: f.__name__)
    def test_gradient_finite(self, factory, iris50, ym50):
        ym = ym50.at[1].set(ym50[0])
        method = factory()
        input_init = None if factory in (mmds, sammon_map) else perp()
        inp, out, method = _embedder(method, iris50, ym, input_init)
        grad = gradient(inp, out, method)
        assert jnp.all(jnp.isfinite(grad))
