"""
Gradients of embedding costs.

- stiffness: Method classification, closed-form / plugin / distance
  stiffness matrices and the coordinate gradient
- finite_difference: Central-difference gradient for verification
"""
from .stiffness import (
    is_asymmetric_kernel,
    is_joint_out_prob,
    is_fully_symmetric_embedding,
    is_enforced_joint_out_prob,
    stiffness_to_gradient,
    closed_form_stiffness,
    normalization_jacobian,
    plugin_stiffness,
    distance_stiffness,
    stiffness,
    gradient,
)
from .finite_difference import DEFAULT_STEP, finite_difference_gradient

__all__ = [
    'is_asymmetric_kernel',
    'is_joint_out_prob',
    'is_fully_symmetric_embedding',
    'is_enforced_joint_out_prob',
    'stiffness_to_gradient',
    'closed_form_stiffness',
    'normalization_jacobian',
    'plugin_stiffness',
    'distance_stiffness',
    'stiffness',
    'gradient',
    'DEFAULT_STEP',
    'finite_difference_gradient',
]
