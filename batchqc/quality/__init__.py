"""Pure conformance engine: classifiers, aggregation, lot identifiers and reporting."""
