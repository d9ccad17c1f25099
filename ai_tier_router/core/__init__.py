"""
Core modules for AI Tier Router.

This package contains the routing logic: complexity analysis, tier
selection, admission control, credit gating, prompt assembly and execution.
"""
