# Copyright 2021-present StarRocks, Inc. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError


class SpectaclesError(SQLAlchemyError):
    """Base class for errors raised by the view extension."""


class MissingQueryError(SpectaclesError, ValueError):
    """No query source could be resolved for a view creation.

    Raised before any SQL is issued, either because neither a query nor a
    block was given, or because the block returned nothing usable.
    """

    def __init__(self, view_name: Optional[str], message: Optional[str] = None) -> None:
        self.view_name = view_name
        if message is None:
            message = (
                f"View {view_name!r} requires a query: pass a SQL string, "
                f"a selectable, or a block returning one of them."
            )
        super().__init__(message)


class UnsupportedOperationError(SpectaclesError, NotImplementedError):
    """The operation, or one of its options, is not supported by the dialect."""

    def __init__(self, dialect_name: str, operation: str, message: Optional[str] = None) -> None:
        self.dialect_name = dialect_name
        self.operation = operation
        if message is None:
            message = f"{operation} is not supported by the {dialect_name!r} dialect"
        super().__init__(message)


class InvalidSchemaDumpError(SpectaclesError, ValueError):
    """A line of a view schema dump is not a view operation with literal arguments."""

    def __init__(self, lineno: int, message: str) -> None:
        self.lineno = lineno
        super().__init__(f"line {lineno}: {message}")
