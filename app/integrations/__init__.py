"""app.integrations — External service gateway modules.

All outbound HTTP calls to other subsystems must go through a gateway in
this package, never via bare `requests` calls in services or blueprints.

Current gateways:
  assessment_gateway.AssessmentGateway — assessment subsystem REST API
"""
