from typing import Any, Union
from collections.abc import Callable, Mapping, Sequence

import sqlalchemy as sa


EngineLike = Union[str, sa.URL, sa.Engine]

# scalar, mapping of column conditions, list of OR-ed conditions, or a Literal
Condition = Union[Mapping[str, Any], Sequence[Any], Any, None]

SQLHook = Union[Callable[[str, list], Any], list, None]
