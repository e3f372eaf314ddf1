"""Secret inputs and the scoped credential handle.

Secret values are never printed, with one configurable exception: a
credential that fails JSON validation is echoed for diagnosis
(``credential.echo_on_invalid``).
"""

from .credential import ScopedCredential  # noqa: F401
from .inputs import PipelineInputs, read_inputs  # noqa: F401
