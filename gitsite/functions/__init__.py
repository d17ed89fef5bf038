"""Lambda function code deployed with the site stack."""
