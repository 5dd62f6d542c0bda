"""Domain modules package."""

from tutorcore.modules.audit import models as audit_models  # noqa: F401
from tutorcore.modules.billing import models as billing_models  # noqa: F401
from tutorcore.modules.booking import models as booking_models  # noqa: F401
from tutorcore.modules.chat import models as chat_models  # noqa: F401
from tutorcore.modules.identity import models as identity_models  # noqa: F401
from tutorcore.modules.lessons import models as lessons_models  # noqa: F401
