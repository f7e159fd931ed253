"""Pure transforms over structure documents: visibility, ordering, verification, fragments."""
