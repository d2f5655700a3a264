"""
Method Specification and Output Orchestrator Tests

Test Suites:
- Construction-time rejection of unsupported configurations
- Keep-set declarations
- Output update: retention, hooks, immutability
- Symmetry classification
- Initialization (perplexity, multiscale, importance, per-point)
"""
from dataclasses import replace

import pytest
import jax.numpy as jnp

from probembed import (
    ConfigurationError,
    CostType,
    ExpKernel,
    HeavyTailKernel,
    IdentityKernel,
    JSDivergence,
    Keep,
    KLDivergence,
    KruskalStress,
    MethodSpec,
    MetricStress,
    MultiscalePerplexityInit,
    OutputState,
    PerplexityInit,
    PrecisionTransfer,
    ProbabilityMatrix,
    ProbType,
    SquaredError,
    StiffnessStrategy,
    TDistKernel,
    Transform,
    cost_and_gradient,
    cost_point,
    cost_value,
    distance_matrix,
    embedder,
    get_method,
    gradient,
    init_embedding,
    pluginize,
    update_output,
    with_stiffness,
)
from probembed.embedding.method import (
    METHODS, asne, ih3sne, itsne, jse, mmds, nerv, ssne, tsne, wssne,
)
from probembed.gradient.stiffness import (
    is_asymmetric_kernel,
    is_enforced_joint_out_prob,
    is_fully_symmetric_embedding,
    is_joint_out_prob,
)


# =============================================================================
# Construction
# =============================================================================

class TestConstruction:

    def test_closed_form_rejects_multiscale(self):
        with pytest.raises(ConfigurationError, match="plugin"):
            MethodSpec("ms", KLDivergence(), ExpKernel(), ProbType.ROW,
                       scales=(ExpKernel(1.0), ExpKernel(2.0)))

    def test_closed_form_rejects_square_error(self):
        with pytest.raises(ConfigurationError):
            MethodSpec("sq", SquaredError(), ExpKernel(), ProbType.JOINT)

    def test_closed_form_rejects_identity_kernel(self):
        with pytest.raises(ConfigurationError):
            MethodSpec("id", KLDivergence(), IdentityKernel(), ProbType.JOINT)

    def test_closed_form_rejects_unnormalized(self):
        with pytest.raises(ConfigurationError):
            MethodSpec("un", KLDivergence(), ExpKernel(), ProbType.UNNORMALIZED)

    @pytest.mark.parametrize("prob_type,out_prob_type,kernel", [
        (ProbType.ROW, ProbType.JOINT, ExpKernel()),
        (ProbType.ROW, ProbType.CONDITIONAL, ExpKernel()),
        (ProbType.JOINT, ProbType.ROW, ExpKernel()),
        (ProbType.CONDITIONAL, ProbType.ROW, ExpKernel()),
        (ProbType.CONDITIONAL, ProbType.JOINT, ExpKernel(jnp.linspace(0.1, 1.0, 5))),
    ], ids=["row-joint", "row-cond", "joint-row", "cond-row", "cond-enforced-joint"])
    def test_closed_form_rejects_mixed_normalization(self, prob_type, out_prob_type, kernel):
        with pytest.raises(ConfigurationError, match="Closed-form"):
            MethodSpec("mix", KLDivergence(), kernel, prob_type, out_prob_type=out_prob_type)
        method = MethodSpec("mix", KLDivergence(), kernel, prob_type,
                            out_prob_type=out_prob_type,
                            stiffness=StiffnessStrategy.PLUGIN)
        assert method.output_prob_type == out_prob_type

    def test_closed_form_accepts_matching_normalization(self):
        MethodSpec("cj", KLDivergence(), ExpKernel(), ProbType.CONDITIONAL,
                   out_prob_type=ProbType.JOINT)
        MethodSpec("jc", KLDivergence(), ExpKernel(jnp.ones(5)), ProbType.JOINT,
                   out_prob_type=ProbType.CONDITIONAL)

    def test_multiscale_replace_rejects_closed_form(self):
        """Replacing the scales of a closed-form method fails at once."""
        init = MultiscalePerplexityInit(perplexities=(10.0, 5.0))
        xm = jnp.arange(40.0).reshape(20, 2) ** 0.5
        with pytest.raises(ConfigurationError):
            init_embedding(ssne(), xm=xm, input_init=init)

    def test_distance_cost_rules(self):
        with pytest.raises(ConfigurationError):
            MethodSpec("k", MetricStress(), kernel=ExpKernel())
        with pytest.raises(ConfigurationError):
            MethodSpec("p", MetricStress(), stiffness=StiffnessStrategy.PLUGIN)
        with pytest.raises(ConfigurationError, match="diagnostic"):
            MethodSpec("d", KruskalStress())

    def test_probability_cost_rules(self):
        with pytest.raises(ConfigurationError):
            MethodSpec("none", KLDivergence(), ExpKernel())
        with pytest.raises(ConfigurationError):
            MethodSpec("dist", KLDivergence(), ExpKernel(), ProbType.ROW,
                       stiffness=StiffnessStrategy.DISTANCE)

    def test_unknown_tags(self):
        with pytest.raises(ConfigurationError):
            MethodSpec("t", KLDivergence(), ExpKernel(), "row")
        with pytest.raises(ConfigurationError):
            MethodSpec("s", KLDivergence(), ExpKernel(), ProbType.ROW, stiffness="plugin")
        with pytest.raises(ConfigurationError):
            MethodSpec("c", object(), ExpKernel(), ProbType.ROW)

    def test_every_named_method_builds(self):
        for name in METHODS:
            assert get_method(name).name

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError, match="Unknown method"):
            get_method("umap")

    def test_pluginize(self):
        assert pluginize(tsne()).stiffness == StiffnessStrategy.PLUGIN
        assert pluginize(mmds()).stiffness == StiffnessStrategy.DISTANCE
        assert with_stiffness(pluginize(tsne()), StiffnessStrategy.CLOSED_FORM).stiffness \
            == StiffnessStrategy.CLOSED_FORM

    def test_embedder_defaults(self):
        method = embedder(SquaredError(), transform=Transform.NONE)
        assert method.stiffness == StiffnessStrategy.PLUGIN
        assert method.prob_type == ProbType.UNNORMALIZED
        method = embedder(MetricStress())
        assert method.stiffness == StiffnessStrategy.DISTANCE
        assert method.prob_type is None


# =============================================================================
# Keep Sets
# =============================================================================

class TestKeepSets:

    def test_exponential_closed_form_keeps_nothing(self):
        assert asne().keep == frozenset()
        assert ssne().keep == frozenset()

    def test_t_kernel_keeps_weights(self):
        assert tsne().keep == {Keep.WEIGHTS}

    def test_enforced_joint_keeps_conditional(self):
        assert Keep.CONDITIONAL in ssne(beta=jnp.linspace(0.1, 1.0, 5)).keep
        assert Keep.CONDITIONAL in itsne(jnp.ones(5)).keep
        assert Keep.CONDITIONAL not in ih3sne().keep

    def test_plugin_keeps_weights_and_squared_distances(self):
        assert pluginize(asne()).keep == {Keep.WEIGHTS, Keep.SQUARED_DISTANCES}

    def test_multiscale_keeps_scales(self):
        method = MethodSpec("ms", KLDivergence(), ExpKernel(), ProbType.ROW,
                            stiffness=StiffnessStrategy.PLUGIN,
                            scales=(ExpKernel(1.0), ExpKernel(2.0)))
        assert method.keep == {Keep.SCALES, Keep.SQUARED_DISTANCES}

    def test_distance_methods_keep_distances(self):
        assert mmds().keep == {Keep.DISTANCES}
        assert pluginize(mmds()).keep == {Keep.DISTANCES}

    def test_raw_distance_transform_keeps_squared_distances(self):
        method = MethodSpec("d", KLDivergence(), ExpKernel(), ProbType.ROW,
                            transform=Transform.NONE)
        assert Keep.SQUARED_DISTANCES in method.keep


# =============================================================================
# Classification
# =============================================================================

class TestClassification:

    def test_fully_symmetric(self):
        assert is_fully_symmetric_embedding(ssne())
        assert is_fully_symmetric_embedding(tsne())
        assert not is_fully_symmetric_embedding(asne())
        assert not is_fully_symmetric_embedding(ssne(beta=jnp.ones(5)))

    def test_enforced_joint(self):
        assert is_enforced_joint_out_prob(ssne(beta=jnp.ones(5)))
        assert not is_enforced_joint_out_prob(ssne())
        assert not is_enforced_joint_out_prob(asne(beta=jnp.ones(5)))

    def test_multiscale_asymmetry(self):
        """Asymmetric if any scale kernel is."""
        method = MethodSpec("ms", KLDivergence(), ExpKernel(), ProbType.JOINT,
                            stiffness=StiffnessStrategy.PLUGIN,
                            scales=(ExpKernel(1.0), ExpKernel(jnp.ones(5))))
        assert is_asymmetric_kernel(method)
        assert is_joint_out_prob(method)
        assert not is_fully_symmetric_embedding(method)


# =============================================================================
# Output Update
# =============================================================================

@pytest.fixture
def embedded(iris50, ym50):
    def build(method, input_init=PerplexityInit(15.0)):
        if method.cost.cost_type == CostType.DISTANCE:
            input_init = None
        return init_embedding(method, xm=iris50, input_init=input_init, output_init=ym50)
    return build


@pytest.mark.invariant
class TestUpdateOutput:

    def test_retains_only_declared(self, embedded):
        _, out, _ = embedded(asne())
        assert out.qm is not None
        assert out.wm is None and out.d2m is None and out.dm is None and out.qcm is None

    def test_t_kernel_retains_weights(self, embedded):
        _, out, _ = embedded(tsne())
        assert out.wm is not None
        assert out.d2m is None

    def test_enforced_joint_retains_conditional(self, embedded):
        _, out, _ = embedded(ssne(beta=jnp.linspace(0.1, 1.0, 50)))
        assert out.qcm.prob_type == ProbType.CONDITIONAL
        assert jnp.allclose(out.qm.data, 0.5 * (out.qcm.data + out.qcm.data.T))

    def test_distance_retains_distances(self, embedded):
        _, out, _ = embedded(mmds())
        assert out.qm is None
        assert out.dm is not None and out.wm is None

    def test_js_mixture_cached(self, embedded):
        inp, out, method = embedded(jse(kappa=0.3))
        expected = 0.3 * inp.pm.data + 0.7 * out.qm.data
        assert jnp.allclose(out.zm, expected)

    def test_method_hook_runs_before_cost_hook(self, iris50, ym50):
        """The cost hook sees what the method hook stored."""
        seen = []
        uniform = (1.0 - jnp.eye(50)) / 49.0

        def hook(inp, out, method):
            seen.append(out.zm is None)
            return replace(out, qm=ProbabilityMatrix(uniform, ProbType.ROW))

        method = MethodSpec("JSE+hook", JSDivergence(kappa=0.5), ExpKernel(), ProbType.ROW,
                            out_updated=hook)
        inp, out, _ = init_embedding(method, xm=iris50, input_init=PerplexityInit(15.0),
                                     output_init=ym50)
        assert seen == [True]
        assert jnp.allclose(out.zm, 0.5 * inp.pm.data + 0.5 * uniform)

    def test_update_does_not_mutate(self, embedded, ym50):
        inp, out, method = embedded(tsne())
        before = out.qm.data
        moved = update_output(inp, OutputState(ym=ym50 * 2.0), method)
        assert out.qm.data is before
        assert not jnp.allclose(moved.qm.data, before)

    def test_cost_and_gradient(self, embedded, ym50):
        inp, out, method = embedded(tsne())
        cost, grad, new_out = cost_and_gradient(ym50, inp, out, method)
        assert jnp.allclose(cost, cost_value(inp, out, method))
        assert jnp.allclose(grad, gradient(inp, out, method))
        assert new_out is not out

    def test_cost_point_sums_to_cost(self, embedded):
        inp, out, method = embedded(nerv())
        assert jnp.allclose(jnp.sum(cost_point(inp, out, method)), cost_value(inp, out, method))

    def test_gradient_translation_invariant(self, embedded):
        """Stiffness gradients sum to zero over points."""
        inp, out, method = embedded(tsne())
        assert jnp.allclose(jnp.sum(gradient(inp, out, method), axis=0), 0.0, atol=1e-12)


# =============================================================================
# Initialization
# =============================================================================

class TestInitialization:

    def test_perplexity_init_types(self, embedded):
        inp, _, _ = embedded(tsne())
        assert inp.pm.prob_type == ProbType.JOINT
        assert inp.beta.shape == (50,)
        inp, _, _ = embedded(asne())
        assert inp.pm.prob_type == ProbType.ROW

    def test_multiscale_scale_kernels(self, iris50, ym50):
        init = MultiscalePerplexityInit(perplexities=(30.0, 15.0))
        inp, out, method = init_embedding(pluginize(ssne()), xm=iris50,
                                          input_init=init, output_init=ym50)
        assert len(method.scales) == 2
        assert len(out.scales) == 2
        assert jnp.allclose(method.scales[0].beta, 30.0 ** -1.0)
        assert len(inp.scale_betas) == 2
        assert jnp.allclose(jnp.sum(inp.pm.data), 1.0)

    def test_multiscale_transfer_is_asymmetric(self, iris50, ym50):
        init = MultiscalePerplexityInit(perplexities=(30.0, 15.0),
                                        transfer=PrecisionTransfer.TRANSFER)
        inp, _, method = init_embedding(pluginize(asne()), xm=iris50,
                                        input_init=init, output_init=ym50)
        assert is_asymmetric_kernel(method)
        assert jnp.allclose(method.scales[1].beta, inp.scale_betas[1])

    def test_multiscale_requires_kernel(self, iris50):
        method = embedder(KLDivergence(), prob_type=ProbType.ROW)
        with pytest.raises(ConfigurationError):
            init_embedding(method, xm=iris50, input_init=MultiscalePerplexityInit())

    def test_importance_degrees(self, embedded):
        inp, _, method = embedded(wssne())
        assert jnp.allclose(method.kernel.degrees, 50 * jnp.sum(inp.pm.data, axis=1))

    def test_per_point_expansion(self, embedded):
        _, _, method = embedded(itsne())
        assert method.kernel.dof.shape == (50,)
        assert is_enforced_joint_out_prob(method)

    def test_input_from_method(self, iris50, ym50):
        """No calibration: the method's own kernel over the input."""
        inp, _, _ = init_embedding(ssne(beta=2.0), xm=iris50, output_init=ym50)
        assert inp.pm.prob_type == ProbType.JOINT
        assert inp.beta is None

    def test_distance_input(self, iris50):
        inp, out, _ = init_embedding(mmds(), dm=distance_matrix(iris50))
        assert inp.xm is None
        assert out.ym.shape == (50, 2)

    def test_exactly_one_input(self, iris50):
        with pytest.raises(ValueError):
            init_embedding(mmds())
        with pytest.raises(ValueError):
            init_embedding(mmds(), xm=iris50, dm=iris50)

    def test_output_shape_checked(self, iris50):
        with pytest.raises(ValueError, match="initial coordinates"):
            init_embedding(mmds(), xm=iris50, output_init=jnp.zeros((10, 2)))

    def test_heavy_tail_per_point(self, embedded):
        _, _, method = embedded(ih3sne())
        assert isinstance(method.kernel, HeavyTailKernel)
        assert method.kernel.alpha.shape == (50,)
        assert method.output_prob_type == ProbType.CONDITIONAL

    def test_t_kernel_unchanged(self, embedded):
        _, _, method = embedded(tsne())
        assert isinstance(method.kernel, TDistKernel)
