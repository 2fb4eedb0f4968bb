from typing import Generic, TypeVar, Optional, Any, Dict, Union
from http import HTTPStatus

T = TypeVar('T')  # Generic type variable

class Result(Generic[T]):
    """
    A generic result class that represents the outcome of a merge operation.

    Merge components never let an exception escape to the caller; they return
    either a successful Result with data, or a failed Result carrying an error
    message, an HTTP status and the context (group key, file name) needed to
    tell the user which group or file failed.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (present on success, and on a failed
            batch where it carries the partial report)
        error (Optional[str]): Error message (only present when success is False)
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
        context (Dict[str, Any]): Attribution for failures, e.g. group_key and filename
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize a Result object.

        Args:
            success (bool): Whether the operation succeeded
            data (Optional[T], optional): The data returned by the operation. Defaults to None.
            error (Optional[str], optional): Error message for a failed operation. Defaults to None.
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code.
                Defaults to 200 for success, 400 for failure.
            context (Optional[Dict[str, Any]], optional): Failure attribution. Defaults to empty.
        """
        self.success = success
        self.data = data
        self.error = error
        self.context = dict(context or {})

        # Set default status code based on success/failure if not provided
        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        else:
            if isinstance(status_code, int):
                self.status_code = HTTPStatus(status_code)
            else:
                self.status_code = status_code

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(
        cls,
        error: str,
        status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.BAD_REQUEST,
        data: Optional[T] = None,
        **context: Any
    ) -> "Result[T]":
        """
        Create a failed Result with the provided error message.

        Args:
            error (str): The error message describing the failure
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 400 BAD_REQUEST.
            data (Optional[T], optional): Partial data to keep alongside the failure
            **context: Attribution such as group_key or filename

        Returns:
            Result[T]: A failed Result containing the error message
        """
        return cls(success=False, data=data, error=error, status_code=status_code, context=context)

    @classmethod
    def empty_input(cls, error: str = "No files were supplied") -> "Result[T]":
        """
        Create a failed Result for a batch that has nothing to merge.

        Args:
            error (str, optional): The error message. Defaults to "No files were supplied".

        Returns:
            Result[T]: A failed Result with 400 status code
        """
        return cls(success=False, error=error, status_code=HTTPStatus.BAD_REQUEST)

    @classmethod
    def decode_failure(cls, filename: str, error: str, **context: Any) -> "Result[T]":
        """
        Create a failed Result for a workbook whose bytes could not be read.

        Args:
            filename (str): Name of the uploaded file that failed to decode
            error (str): The underlying reader error
            **context: Additional attribution such as group_key

        Returns:
            Result[T]: A failed Result with 400 status code naming the file
        """
        return cls(
            success=False,
            error=f"Failed to read workbook '{filename}': {error}",
            status_code=HTTPStatus.BAD_REQUEST,
            context={"filename": filename, **context}
        )

    @classmethod
    def server_error(cls, error: str = "Internal server error", **context: Any) -> "Result[T]":
        """
        Create a failed Result with INTERNAL_SERVER_ERROR status code.

        Args:
            error (str, optional): The error message. Defaults to "Internal server error".
            **context: Attribution such as group_key

        Returns:
            Result[T]: A failed Result with 500 status code
        """
        return cls(success=False, error=error, status_code=HTTPStatus.INTERNAL_SERVER_ERROR, context=context)

    def is_success(self) -> bool:
        """
        Check if the Result represents a successful operation.

        Returns:
            bool: True if the Result is successful, False otherwise
        """
        return self.success

    def is_failure(self) -> bool:
        """
        Check if the Result represents a failed operation.

        Returns:
            bool: True if the Result is a failure, False otherwise
        """
        return not self.success

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Result to a dictionary suitable for API responses.

        Pydantic models held in data are dumped to plain JSON-compatible values.

        Returns:
            Dict[str, Any]: Dictionary containing status, status_code, data/error
        """
        response = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase
        }

        data = self.data
        if hasattr(data, "model_dump"):
            data = data.model_dump(mode="json")

        if self.is_success():
            response["data"] = data
        else:
            response["error"] = self.error
            if self.context:
                response["context"] = self.context
            if data is not None:
                response["data"] = data

        return response

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {self.error}"

    def __repr__(self) -> str:
        return (
            f"Result(success={self.success}, status_code={self.status_code!r}, "
            f"data={self.data!r}, error={self.error!r}, context={self.context!r})"
        )
