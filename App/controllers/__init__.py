from .auth import *
from .user import *
from .organization import *
from .qualification import *
from .zone import *
from .shift import *
from .signup import *
from .dispatcher_assignment import *
from .regional_lead_assignment import *
from .date_override import *
from .coverage_requirement import *
from .initialize import *
