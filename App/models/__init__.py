from .organization import *
from .user import *
from .qualification import *
from .zone import *
from .shift import *
from .signup import *
from .assignment import *
from .date_override import *
from .coverage_requirement import *
