"""
Dispatch table for the parallel rule checks.

Replaces hard-coded calls in the check executor with a data-driven lookup.
Declaration order is the order check events appear in the trace.
"""

from models import GraphPath

# =============================================================================
# Check Dispatch
# =============================================================================
# Maps check (trace node) name -> (module_path, function_name, args_builder_fn)
#   module_path: dotted module path for importlib
#   function_name: function to call from that module
#   args_builder_fn: callable(topic_sections, route_path) -> tuple(args, kwargs)


def _topics_args(topic_sections, route_path):
    return (topic_sections,), {}


def _topics_and_route_args(topic_sections, route_path):
    return (topic_sections, route_path), {}


CHECK_DISPATCH = {
    "gap_collector": ("utilities.coverage_gaps", "collect_coverage_gaps", _topics_args),
    "conflict_sweep": ("utilities.conflict_detection", "detect_conflicts", _topics_args),
    "policy_flags_check": ("utilities.policy_flags", "collect_policy_flags", _topics_and_route_args),
}

# Maps check name -> ExecutionResult field name
CHECK_RESULT_FIELD = {
    "gap_collector": "coverage_gaps",
    "conflict_sweep": "conflicts",
    "policy_flags_check": "policy_flags",
}

# Checks that do not run on a given route
CHECK_SKIPPED_ROUTES = {
    "conflict_sweep": {GraphPath.FAST},
}
