from dbstruct.managers.sql import SQLManager
