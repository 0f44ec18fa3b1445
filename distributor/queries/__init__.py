from distributor.queries.common import *
from distributor.queries.tokens import *
