from .api_v2 import api_v2, register_api_v2
