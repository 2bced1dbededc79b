from dbstruct.accessors.sql import SQLAccessor
