from dbstruct.util import db
from dbstruct.util import types
