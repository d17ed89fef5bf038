"""ACM certificate for the apex and www hosts."""

from aws_cdk import Fn
from aws_cdk import aws_certificatemanager as acm
from constructs import Construct


class SiteCertificate(Construct):
  """ACM certificate for <domain> and www.<domain>.

  No validation method is set, so ACM falls back to email approval sent to
  the domain's administrative contacts. CloudFront only accepts certificates
  from us-east-1.
  """

  def __init__(self, scope: Construct, id: str, *, domain_name: str) -> None:
    super().__init__(scope, id)

    self.certificate = acm.CfnCertificate(
      self,
      "Certificate",
      domain_name=domain_name,
      subject_alternative_names=[Fn.join("", ["www.", domain_name])],
    )
    self.certificate.override_logical_id("Certificate")
