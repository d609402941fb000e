"""Services subpackage - operator workflows over the engine."""
from .pricing_service import PricingWorkflow
from .vessel_service import (
    DebouncedKeyCheck,
    VesselAvailability,
    VesselRegistrationService,
    validate_vessel_input,
)

__all__ = [
    'PricingWorkflow', 'DebouncedKeyCheck', 'VesselAvailability',
    'VesselRegistrationService', 'validate_vessel_input',
]
