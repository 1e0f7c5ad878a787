"""
Entitlement rules package.

Evaluates a subscription snapshot against module, permission, feature,
route and usage-cap questions.

Modules of interest:
- constants: Trial ceilings, default caps, verb synonyms, resource maps.
- routes: Ordered route access table with a configurable default.
- evaluator: EntitlementEvaluator with the trial bypass and deny-by-default rules.
- models: Request/response models and check results.
"""
