"""
Logging module for keyvault_automation.

Import directly from sub-modules:
    from keyvault_automation.common.logging.setup import get_logger, setup_logging
    from keyvault_automation.common.logging.utilities import log_with_context
    from keyvault_automation.common.logging.audit import get_audit_logger
"""
